"""Claim contention scenarios.

ReadyOrderFeeder keeps the pool of ready orders topped up. ClaimRaceAgent
users all poll the same pool and grab the oldest order, so several agents
routinely claim the same order at once. Exactly one claim per order may
win; the losers must get a 409 marked as retry, which counts as success
here. Any second winner shows up as an assignment mismatch on delivery.
"""

from locust import HttpUser, between, constant_pacing, task

from loadtests.data_generators import actor_headers, agent_data, customer_id, order_data
from loadtests.helpers.response import extract_error_detail, is_retry
from loadtests.helpers.state import AgentState

ADMIN = actor_headers("admin-lt", "Admin")


class ReadyOrderFeeder(HttpUser):
    """Places orders and pushes them straight to Ready_For_Pickup."""

    weight = 1
    wait_time = constant_pacing(0.5)

    @task
    def feed_ready_order(self):
        customer = customer_id()
        payload = order_data()
        resp = self.client.post(
            "/orders",
            json=payload,
            headers=actor_headers(customer, "Customer"),
            name="[RACE] POST /orders",
        )
        if resp.status_code != 201:
            return
        order_id = resp.json()["order_id"]
        seller = actor_headers(payload["items"][0]["seller_id"], "Seller")
        for status in ("Confirmed", "Preparing", "Ready_For_Pickup"):
            self.client.put(
                f"/orders/{order_id}/status",
                json={"status": status},
                headers=seller,
                name="[RACE] PUT /orders/{id}/status",
            )


class ClaimRaceAgent(HttpUser):
    """An agent racing the others for the oldest ready order."""

    weight = 4
    wait_time = between(0.05, 0.2)

    def on_start(self):
        self.state = AgentState()
        resp = self.client.post("/agents", json=agent_data(), headers=ADMIN, name="[RACE] POST /agents")
        self.state.agent_id = resp.json()["agent_id"]
        self._go_online()

    def _headers(self):
        return actor_headers(self.state.agent_id, "Delivery_Agent")

    def _go_online(self):
        self.client.put(
            "/agents/me/availability",
            json={"is_available": True},
            headers=self._headers(),
            name="[RACE] PUT /agents/me/availability",
        )

    @task
    def race(self):
        if self.state.active_order_id:
            self._deliver()
            return

        resp = self.client.get("/deliveries/available", headers=self._headers(), name="[RACE] GET /deliveries/available")
        if resp.status_code != 200 or not resp.json():
            return
        order_id = resp.json()[0]["order_id"]

        with self.client.post(
            "/deliveries/claim",
            json={"order_id": order_id},
            headers=self._headers(),
            catch_response=True,
            name="[RACE] POST /deliveries/claim",
        ) as claim:
            if claim.status_code == 200:
                self.state.active_order_id = order_id
                self.state.customer_id = claim.json()["order"]["customer_id"]
                self.state.claims_won += 1
            elif is_retry(claim):
                self.state.claims_lost += 1
                claim.success()
            else:
                claim.failure(f"Claim failed: {claim.status_code}: {extract_error_detail(claim)}")

    def _deliver(self):
        order_id = self.state.active_order_id
        self.client.put(
            "/deliveries/status",
            json={"order_id": order_id, "status": "Picked_Up"},
            headers=self._headers(),
            name="[RACE] PUT /deliveries/status [Picked_Up]",
        )
        otp = self.client.post(
            f"/orders/{order_id}/otp",
            headers=actor_headers(self.state.customer_id, "Customer"),
            name="[RACE] POST /orders/{id}/otp",
        )
        if otp.status_code == 200:
            self.client.post(
                f"/orders/{order_id}/otp/verify",
                json={"otp": otp.json()["otp"]},
                headers=self._headers(),
                name="[RACE] POST /orders/{id}/otp/verify",
            )
        with self.client.put(
            "/deliveries/status",
            json={"order_id": order_id, "status": "Delivered", "proof": {"proof_type": "OTP"}},
            headers=self._headers(),
            catch_response=True,
            name="[RACE] PUT /deliveries/status [Delivered]",
        ) as resp:
            if resp.status_code == 200:
                self.state.active_order_id = None
                self.state.customer_id = None
            else:
                resp.failure(f"Delivery failed: {resp.status_code}: {extract_error_detail(resp)}")
                self.state.active_order_id = None
