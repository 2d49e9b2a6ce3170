"""Integration tests for agent onboarding and availability endpoints."""

from api_helpers import ADMIN, CUSTOMER, agent_headers, claimed_order, online_agent, ready_order
from fulfillment.agent.agent import DeliveryAgent
from protean import current_domain


class TestRegisterAgentEndpoint:
    def test_admin_registers_agent(self, client):
        response = client.post(
            "/agents",
            json={"name": "Suresh", "phone": "9811100030", "vehicle_type": "Cycle"},
            headers=ADMIN,
        )
        assert response.status_code == 201
        agent = current_domain.repository_for(DeliveryAgent).get(response.json()["agent_id"])
        assert agent.name == "Suresh"
        assert agent.is_available is False

    def test_requires_admin(self, client):
        response = client.post("/agents", json={"name": "Suresh", "phone": "9811100030"}, headers=CUSTOMER)
        assert response.status_code == 403

    def test_missing_phone(self, client):
        response = client.post("/agents", json={"name": "Suresh"}, headers=ADMIN)
        assert response.status_code == 422


class TestAvailabilityEndpoint:
    def _register(self, client):
        response = client.post("/agents", json={"name": "Suresh", "phone": "9811100031"}, headers=ADMIN)
        return response.json()["agent_id"]

    def test_go_online_and_offline(self, client):
        agent_id = self._register(client)
        headers = agent_headers(agent_id)

        response = client.put("/agents/me/availability", json={"is_available": True}, headers=headers)
        assert response.json() == {"status": "available"}

        response = client.put("/agents/me/availability", json={"is_available": False}, headers=headers)
        assert response.json() == {"status": "offline"}
        assert current_domain.repository_for(DeliveryAgent).get(agent_id).is_available is False

    def test_unknown_agent(self, client):
        response = client.put(
            "/agents/me/availability",
            json={"is_available": True},
            headers=agent_headers("no-such-agent"),
        )
        assert response.status_code == 404

    def test_only_agents(self, client):
        response = client.put("/agents/me/availability", json={"is_available": True}, headers=ADMIN)
        assert response.status_code == 403


def _deliver_with_photo(client, order_id, agent_id):
    headers = agent_headers(agent_id)
    client.put("/deliveries/status", json={"order_id": order_id, "status": "Picked_Up"}, headers=headers)
    response = client.put(
        "/deliveries/status",
        json={
            "order_id": order_id,
            "status": "Delivered",
            "proof": {"proof_type": "Photo", "reference": "s3://proofs/p.jpg"},
        },
        headers=headers,
    )
    assert response.status_code == 200, response.text


class TestMyDeliveriesEndpoint:
    def test_lists_carried_orders(self, client):
        order_id, agent_id = claimed_order(client)
        response = client.get("/agents/me/deliveries", headers=agent_headers(agent_id))
        assert response.status_code == 200
        body = response.json()
        assert [d["order_id"] for d in body] == [order_id]
        assert body[0]["outcome"] == "Active"
        assert body[0]["status"] == "Out_For_Delivery"
        assert body[0]["station_name"] == "Bhopal Jn"

    def test_filters(self, client):
        order_id, agent_id = claimed_order(client)
        _deliver_with_photo(client, order_id, agent_id)
        headers = agent_headers(agent_id)

        delivered = client.get("/agents/me/deliveries?status=Delivered&period=today", headers=headers).json()
        assert [d["order_id"] for d in delivered] == [order_id]
        assert delivered[0]["outcome"] == "Delivered"
        assert delivered[0]["closed_at"] is not None

        assert client.get("/agents/me/deliveries?status=Cancelled", headers=headers).json() == []

    def test_unknown_period(self, client):
        _, agent_id = claimed_order(client)
        response = client.get("/agents/me/deliveries?period=yesterday", headers=agent_headers(agent_id))
        assert response.status_code == 400

    def test_only_agents(self, client):
        assert client.get("/agents/me/deliveries", headers=CUSTOMER).status_code == 403


class TestDashboardEndpoint:
    def test_dashboard_after_a_delivery(self, client):
        order_id, agent_id = claimed_order(client)
        _deliver_with_photo(client, order_id, agent_id)
        ready_order(client)

        body = client.get("/agents/me/dashboard", headers=agent_headers(agent_id)).json()
        assert body["name"] == "Deepak"
        assert body["is_available"] is True
        assert body["earnings_today"] == 3000
        assert body["delivered_today"] == 1
        assert body["available_orders"] == 1
        assert body["active_order"] is None

    def test_active_order_summary(self, client):
        order_id, agent_id = claimed_order(client)
        body = client.get("/agents/me/dashboard", headers=agent_headers(agent_id)).json()
        assert body["active_order"]["order_id"] == order_id
        assert body["active_order"]["status"] == "Out_For_Delivery"
        assert body["is_available"] is False

    def test_fresh_agent(self, client):
        agent_id = online_agent(client)
        body = client.get("/agents/me/dashboard", headers=agent_headers(agent_id)).json()
        assert body["earnings_today"] == 0
        assert body["total_deliveries"] == 0
        assert body["active_order"] is None

    def test_unknown_agent(self, client):
        response = client.get("/agents/me/dashboard", headers=agent_headers("no-such-agent"))
        assert response.status_code == 404
