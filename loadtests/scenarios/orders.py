"""Order lifecycle load test scenarios.

A stateful SequentialTaskSet walks one order from checkout to handover:
place, seller item stages, status up to ready, claim, pickup, delivery code
and delivery. A second journey cancels orders before they are claimed.
"""

import random

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import actor_headers, agent_data, customer_id, order_data
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import AgentState, OrderState

ADMIN = actor_headers("admin-lt", "Admin")


class OrderHandoverJourney(SequentialTaskSet):
    """Place -> Item stages -> Ready -> Claim -> Picked up -> OTP -> Delivered.

    The happy path through every status the order and the agent go through.
    """

    def on_start(self):
        self.state = OrderState(customer_id=customer_id())
        self.agent = AgentState()

    def _customer(self):
        return actor_headers(self.state.customer_id, "Customer")

    def _seller(self, seller_id):
        return actor_headers(seller_id, "Seller")

    def _agent(self):
        return actor_headers(self.agent.agent_id, "Delivery_Agent")

    @task
    def place_order(self):
        payload = order_data()
        with self.client.post(
            "/orders",
            json=payload,
            headers=self._customer(),
            catch_response=True,
            name="POST /orders",
        ) as resp:
            if resp.status_code == 201:
                self.state.order_id = resp.json()["order_id"]
                self.state.seller_ids = [item["seller_id"] for item in payload["items"]]
            else:
                resp.failure(f"Place order failed: {resp.status_code}: {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def read_items(self):
        with self.client.get(
            f"/orders/{self.state.order_id}",
            headers=self._customer(),
            catch_response=True,
            name="GET /orders/{id}",
        ) as resp:
            if resp.status_code == 200:
                self.state.item_ids = {item["item_id"]: item["seller_id"] for item in resp.json()["items"]}
            else:
                resp.failure(f"Get order failed: {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def prepare_items(self):
        for item_id, seller_id in self.state.item_ids.items():
            for stage in ("Accepted", "Preparing", "Ready"):
                with self.client.put(
                    f"/orders/{self.state.order_id}/items/{item_id}/status",
                    json={"item_status": stage},
                    headers=self._seller(seller_id),
                    catch_response=True,
                    name="PUT /orders/{id}/items/{item_id}/status",
                ) as resp:
                    if resp.status_code != 200:
                        resp.failure(f"Item {stage} failed: {extract_error_detail(resp)}")
                        self.interrupt()

    @task
    def advance_to_ready(self):
        seller = self._seller(self.state.seller_ids[0])
        for status in ("Confirmed", "Preparing", "Ready_For_Pickup"):
            with self.client.put(
                f"/orders/{self.state.order_id}/status",
                json={"status": status},
                headers=seller,
                catch_response=True,
                name="PUT /orders/{id}/status",
            ) as resp:
                if resp.status_code == 200:
                    self.state.current_status = status
                else:
                    resp.failure(f"Status {status} failed: {extract_error_detail(resp)}")
                    self.interrupt()

    @task
    def register_agent(self):
        with self.client.post(
            "/agents",
            json=agent_data(),
            headers=ADMIN,
            catch_response=True,
            name="POST /agents",
        ) as resp:
            if resp.status_code == 201:
                self.agent.agent_id = resp.json()["agent_id"]
            else:
                resp.failure(f"Register agent failed: {extract_error_detail(resp)}")
                self.interrupt()
        self.client.put(
            "/agents/me/availability",
            json={"is_available": True},
            headers=self._agent(),
            name="PUT /agents/me/availability",
        )

    @task
    def claim(self):
        with self.client.post(
            "/deliveries/claim",
            json={"order_id": self.state.order_id},
            headers=self._agent(),
            catch_response=True,
            name="POST /deliveries/claim",
        ) as resp:
            if resp.status_code == 200:
                self.agent.active_order_id = self.state.order_id
                self.state.current_status = "Out_For_Delivery"
            else:
                resp.failure(f"Claim failed: {resp.status_code}: {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def pick_up(self):
        with self.client.put(
            "/deliveries/status",
            json={"order_id": self.state.order_id, "status": "Picked_Up"},
            headers=self._agent(),
            catch_response=True,
            name="PUT /deliveries/status [Picked_Up]",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Pickup failed: {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def hand_over(self):
        resp = self.client.post(
            f"/orders/{self.state.order_id}/otp",
            headers=self._customer(),
            name="POST /orders/{id}/otp",
        )
        if resp.status_code != 200:
            self.interrupt()
        code = resp.json()["otp"]

        self.client.post(
            f"/orders/{self.state.order_id}/otp/verify",
            json={"otp": code},
            headers=self._agent(),
            name="POST /orders/{id}/otp/verify",
        )
        with self.client.put(
            "/deliveries/status",
            json={"order_id": self.state.order_id, "status": "Delivered", "proof": {"proof_type": "OTP"}},
            headers=self._agent(),
            catch_response=True,
            name="PUT /deliveries/status [Delivered]",
        ) as resp:
            if resp.status_code == 200:
                self.state.current_status = "Delivered"
            else:
                resp.failure(f"Delivery failed: {extract_error_detail(resp)}")

    @task
    def check_earnings(self):
        self.client.get("/agents/me/earnings", headers=self._agent(), name="GET /agents/me/earnings")

    @task
    def done(self):
        self.interrupt()


class OrderCancellationJourney(SequentialTaskSet):
    """Place -> Confirm -> Customer cancels."""

    def on_start(self):
        self.state = OrderState(customer_id=customer_id())

    @task
    def place_order(self):
        payload = order_data()
        with self.client.post(
            "/orders",
            json=payload,
            headers=actor_headers(self.state.customer_id, "Customer"),
            catch_response=True,
            name="POST /orders",
        ) as resp:
            if resp.status_code == 201:
                self.state.order_id = resp.json()["order_id"]
                self.state.seller_ids = [item["seller_id"] for item in payload["items"]]
            else:
                resp.failure(f"Place order failed: {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def maybe_confirm(self):
        if random.random() < 0.5:
            self.client.put(
                f"/orders/{self.state.order_id}/status",
                json={"status": "Confirmed"},
                headers=actor_headers(self.state.seller_ids[0], "Seller"),
                name="PUT /orders/{id}/status",
            )

    @task
    def cancel(self):
        with self.client.put(
            f"/orders/{self.state.order_id}/cancel",
            json={"reason": "Train rescheduled"},
            headers=actor_headers(self.state.customer_id, "Customer"),
            catch_response=True,
            name="PUT /orders/{id}/cancel",
        ) as resp:
            if resp.status_code == 200:
                self.state.current_status = "Cancelled"
            else:
                resp.failure(f"Cancel failed: {extract_error_detail(resp)}")

    @task
    def done(self):
        self.interrupt()


class OrderUser(HttpUser):
    """Locust user driving orders end to end.

    Weighted distribution:
    - 80% Full handover
    - 20% Cancellation before claim
    """

    wait_time = between(0.5, 2.0)
    tasks = {
        OrderHandoverJourney: 8,
        OrderCancellationJourney: 2,
    }
