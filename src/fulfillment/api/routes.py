"""FastAPI routes for the fulfillment service."""

import json

from fastapi import APIRouter, Depends
from protean.utils.globals import current_domain

from fulfillment.agent.agent import DeliveryAgent
from fulfillment.agent.dashboard import dashboard, my_deliveries
from fulfillment.agent.registration import RegisterDeliveryAgent, SetAgentAvailability
from fulfillment.api.auth import current_actor, require_role
from fulfillment.api.schemas import (
    ActiveOrderSummary,
    AgentDeliveryResponse,
    AgentIdResponse,
    AvailabilityRequest,
    AvailableOrderResponse,
    CancelOrderRequest,
    ClaimRequest,
    ClaimResponse,
    DashboardResponse,
    DeclineRequest,
    DeliveryStatusRequest,
    DeliveryStatusResponse,
    EarningsResponse,
    ForceCancelOrderRequest,
    HistoryEntryResponse,
    OrderIdResponse,
    OrderItemResponse,
    OrderResponse,
    OTPResponse,
    PlaceOrderRequest,
    RecordPaymentRequest,
    RegisterAgentRequest,
    ReportIssueRequest,
    StatusResponse,
    UpdateItemStatusRequest,
    UpdateOrderStatusRequest,
    VerifyOTPRequest,
)
from fulfillment.delivery.lifecycle import ReportDeliveryIssue, UpdateDeliveryStatus
from fulfillment.dispatch.dispatcher import ClaimOrder, DeclineOrder, list_available
from fulfillment.errors import AuthorizationError
from fulfillment.identity import Actor, ActorRole
from fulfillment.order.creation import PlaceOrder
from fulfillment.order.items import UpdateItemStatus
from fulfillment.order.order import Order, OrderStatus
from fulfillment.order.status import CancelOrder, ForceCancelOrder, RecordPaymentStatus, UpdateOrderStatus
from fulfillment.order.verification import GenerateDeliveryOTP, VerifyDeliveryOTP

_agent_only = require_role(ActorRole.DELIVERY_AGENT)


def _order_view(order: Order) -> OrderResponse:
    info = order.delivery_info
    return OrderResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        customer_id=str(order.customer_id),
        status=order.status,
        fulfillment_progress=order.fulfillment_progress,
        assigned_driver_id=str(order.assigned_driver_id) if order.assigned_driver_id else None,
        delivery_stage=order.delivery_stage,
        delivery_type=info.delivery_type if info else None,
        actual_station=info.actual_station if info else None,
        payment_method=order.payment.method if order.payment else None,
        payment_status=order.payment.status if order.payment else None,
        final_total=order.totals.final,
        estimated_delivery_at=order.estimated_delivery_at,
        items=[
            OrderItemResponse(
                item_id=str(item.id),
                product_id=str(item.product_id),
                seller_id=str(item.seller_id),
                name=item.name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                item_status=item.item_status,
                item_note=item.item_note,
            )
            for item in sorted(order.items or [], key=lambda i: i.position)
        ],
        history=[
            HistoryEntryResponse(
                status=entry.status,
                actor_id=entry.actor_id,
                actor_role=entry.actor_role,
                note=entry.note,
                recorded_at=entry.recorded_at,
            )
            for entry in order.timeline()
        ],
        timestamps=order.milestones(),
    )


def _assert_can_view(order: Order, actor: Actor) -> None:
    if actor.is_privileged:
        return
    if actor.role == ActorRole.CUSTOMER and actor.actor_id == str(order.customer_id):
        return
    if actor.role == ActorRole.SELLER and order.involves_seller(actor.actor_id):
        return
    if actor.role == ActorRole.DELIVERY_AGENT and (
        str(order.assigned_driver_id or "") == actor.actor_id or OrderStatus(order.status) == OrderStatus.READY_FOR_PICKUP
    ):
        return
    raise AuthorizationError({"order_id": ["Not allowed to view this order"]})


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderIdResponse)
async def place_order(
    body: PlaceOrderRequest,
    actor: Actor = Depends(require_role(ActorRole.CUSTOMER)),
) -> OrderIdResponse:
    """Hand a checked-out cart over to fulfillment."""
    command = PlaceOrder(
        customer_id=actor.actor_id,
        items=json.dumps([item.model_dump(exclude_none=True) for item in body.items]),
        delivery_info=json.dumps(body.delivery_info.model_dump(mode="json", exclude_none=True)),
        totals=json.dumps(body.totals.model_dump(exclude_none=True)),
        payment_method=body.payment_method,
    )
    order_id = current_domain.process(command, asynchronous=False)
    order = current_domain.repository_for(Order).get(order_id)
    return OrderIdResponse(order_id=order_id, order_number=order.order_number)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, actor: Actor = Depends(current_actor)) -> OrderResponse:
    order = current_domain.repository_for(Order).get(order_id)
    _assert_can_view(order, actor)
    return _order_view(order)


@order_router.put("/{order_id}/status", response_model=StatusResponse)
async def update_order_status(
    order_id: str,
    body: UpdateOrderStatusRequest,
    actor: Actor = Depends(current_actor),
) -> StatusResponse:
    """Move an order along its lifecycle (sellers, customers, admins)."""
    command = UpdateOrderStatus(
        order_id=order_id,
        status=body.status,
        actor_id=actor.actor_id,
        actor_role=actor.role.value,
        note=body.note,
    )
    status = current_domain.process(command, asynchronous=False)
    return StatusResponse(status=status)


@order_router.put("/{order_id}/items/{item_id}/status", response_model=StatusResponse)
async def update_item_status(
    order_id: str,
    item_id: str,
    body: UpdateItemStatusRequest,
    actor: Actor = Depends(current_actor),
) -> StatusResponse:
    """Set the stage of one line item. Sellers only touch their own items."""
    command = UpdateItemStatus(
        order_id=order_id,
        item_id=item_id,
        item_status=body.item_status,
        actor_id=actor.actor_id,
        actor_role=actor.role.value,
        note=body.note,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse(status="item_updated")


@order_router.put("/{order_id}/cancel", response_model=StatusResponse)
async def cancel_order(
    order_id: str,
    body: CancelOrderRequest,
    actor: Actor = Depends(current_actor),
) -> StatusResponse:
    command = CancelOrder(
        order_id=order_id,
        actor_id=actor.actor_id,
        actor_role=actor.role.value,
        reason=body.reason,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse(status="cancelled")


@order_router.put("/{order_id}/force-cancel", response_model=StatusResponse)
async def force_cancel_order(
    order_id: str,
    body: ForceCancelOrderRequest,
    actor: Actor = Depends(require_role(ActorRole.ADMIN)),
) -> StatusResponse:
    """Admin override: cancel up to delivery, releasing the agent."""
    command = ForceCancelOrder(
        order_id=order_id,
        actor_id=actor.actor_id,
        actor_role=actor.role.value,
        reason=body.reason,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse(status="cancelled")


@order_router.put("/{order_id}/payment", response_model=StatusResponse)
async def record_payment(
    order_id: str,
    body: RecordPaymentRequest,
    actor: Actor = Depends(require_role(ActorRole.SYSTEM, ActorRole.ADMIN)),
) -> StatusResponse:
    """Payment service callback with the payment's outcome."""
    command = RecordPaymentStatus(order_id=order_id, payment_status=body.payment_status)
    status = current_domain.process(command, asynchronous=False)
    return StatusResponse(status=status)


@order_router.post("/{order_id}/otp", response_model=OTPResponse)
async def generate_otp(order_id: str, actor: Actor = Depends(current_actor)) -> OTPResponse:
    """Issue a fresh delivery code. The plaintext is only ever in this response."""
    command = GenerateDeliveryOTP(order_id=order_id, actor_id=actor.actor_id, actor_role=actor.role.value)
    result = current_domain.process(command, asynchronous=False)
    return OTPResponse(otp=result["otp"], expires_in_seconds=result["expires_in_seconds"])


@order_router.post("/{order_id}/otp/verify", response_model=StatusResponse)
async def verify_otp(
    order_id: str,
    body: VerifyOTPRequest,
    actor: Actor = Depends(current_actor),
) -> StatusResponse:
    command = VerifyDeliveryOTP(
        order_id=order_id,
        otp=body.otp,
        actor_id=actor.actor_id,
        actor_role=actor.role.value,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse(status="verified")


# ---------------------------------------------------------------------------
# Delivery Router
# ---------------------------------------------------------------------------
delivery_router = APIRouter(prefix="/deliveries", tags=["deliveries"])


@delivery_router.get("/available", response_model=list[AvailableOrderResponse])
async def available_orders(actor: Actor = Depends(_agent_only)) -> list[AvailableOrderResponse]:
    """Ready orders nobody has claimed yet, oldest first."""
    return [
        AvailableOrderResponse(
            order_id=str(order.id),
            order_number=order.order_number,
            delivery_type=order.delivery_info.delivery_type if order.delivery_info else None,
            station_name=order.delivery_info.station_name if order.delivery_info else None,
            item_count=len(order.items or []),
            final_total=order.totals.final,
            ready_for_pickup_at=order.milestones().get("ready_for_pickup_at"),
        )
        for order in list_available()
    ]


@delivery_router.post("/claim", response_model=ClaimResponse)
async def claim_order(body: ClaimRequest, actor: Actor = Depends(_agent_only)) -> ClaimResponse:
    """Claim an order. Exactly one concurrent claimant wins; the rest get 409."""
    command = ClaimOrder(order_id=body.order_id, agent_id=actor.actor_id)
    result = current_domain.process(command, asynchronous=False)
    order = current_domain.repository_for(Order).get(body.order_id)
    return ClaimResponse(order=_order_view(order), estimated_delivery_time=result["estimated_delivery_time"])


@delivery_router.post("/decline", response_model=StatusResponse)
async def decline_order(body: DeclineRequest, actor: Actor = Depends(_agent_only)) -> StatusResponse:
    command = DeclineOrder(order_id=body.order_id, agent_id=actor.actor_id, reason=body.reason)
    current_domain.process(command, asynchronous=False)
    return StatusResponse(status="declined")


@delivery_router.put("/status", response_model=DeliveryStatusResponse)
async def update_delivery_status(
    body: DeliveryStatusRequest,
    actor: Actor = Depends(_agent_only),
) -> DeliveryStatusResponse:
    """Picked up, reached station or delivered. Delivery needs OTP or proof."""
    command = UpdateDeliveryStatus(
        order_id=body.order_id,
        agent_id=actor.actor_id,
        status=body.status,
        station=body.station,
        proof_type=body.proof.proof_type if body.proof else None,
        proof_reference=body.proof.reference if body.proof else None,
    )
    result = current_domain.process(command, asynchronous=False)
    return DeliveryStatusResponse(**result)


@delivery_router.post("/issues", response_model=StatusResponse)
async def report_issue(body: ReportIssueRequest, actor: Actor = Depends(_agent_only)) -> StatusResponse:
    command = ReportDeliveryIssue(
        order_id=body.order_id,
        agent_id=actor.actor_id,
        issue_type=body.issue_type,
        description=body.description,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse(status="issue_reported")


# ---------------------------------------------------------------------------
# Agent Router
# ---------------------------------------------------------------------------
agent_router = APIRouter(prefix="/agents", tags=["agents"])


@agent_router.post("", status_code=201, response_model=AgentIdResponse)
async def register_agent(
    body: RegisterAgentRequest,
    actor: Actor = Depends(require_role(ActorRole.ADMIN)),
) -> AgentIdResponse:
    command = RegisterDeliveryAgent(
        name=body.name,
        phone=body.phone,
        email=body.email,
        vehicle_type=body.vehicle_type,
    )
    agent_id = current_domain.process(command, asynchronous=False)
    return AgentIdResponse(agent_id=agent_id)


@agent_router.put("/me/availability", response_model=StatusResponse)
async def set_availability(body: AvailabilityRequest, actor: Actor = Depends(_agent_only)) -> StatusResponse:
    command = SetAgentAvailability(agent_id=actor.actor_id, is_available=body.is_available)
    current_domain.process(command, asynchronous=False)
    return StatusResponse(status="available" if body.is_available else "offline")


@agent_router.get("/me/earnings", response_model=EarningsResponse)
async def my_earnings(actor: Actor = Depends(_agent_only)) -> EarningsResponse:
    agent = current_domain.repository_for(DeliveryAgent).get(actor.actor_id)
    earnings, stats = agent.earnings, agent.stats
    return EarningsResponse(
        agent_id=str(agent.id),
        is_available=bool(agent.is_available),
        active_order_id=str(agent.active_order_id) if agent.active_order_id else None,
        today=agent.todays_earnings(),
        total=earnings.total,
        pending=earnings.pending,
        cash_collected=earnings.cash_collected,
        total_deliveries=stats.total_deliveries,
        successful_deliveries=stats.successful_deliveries,
        cancelled_deliveries=stats.cancelled_deliveries,
        completion_rate=stats.completion_rate,
    )


@agent_router.get("/me/deliveries", response_model=list[AgentDeliveryResponse])
async def my_deliveries_view(
    status: str | None = None,
    period: str | None = None,
    actor: Actor = Depends(_agent_only),
) -> list[AgentDeliveryResponse]:
    """Orders the calling agent has carried, newest first. `period` is ``today`` or ``all``."""
    return [
        AgentDeliveryResponse(
            order_id=str(order.id),
            order_number=order.order_number,
            status=order.status,
            delivery_stage=order.delivery_stage,
            station_name=order.delivery_info.station_name if order.delivery_info else None,
            final_total=order.totals.final,
            outcome=assignment.outcome,
            assigned_at=assignment.assigned_at,
            closed_at=assignment.closed_at,
        )
        for assignment, order in my_deliveries(actor.actor_id, status=status, period=period)
    ]


@agent_router.get("/me/dashboard", response_model=DashboardResponse)
async def my_dashboard(actor: Actor = Depends(_agent_only)) -> DashboardResponse:
    summary = dashboard(actor.actor_id)
    agent, active = summary["agent"], summary["active_order"]
    return DashboardResponse(
        agent_id=str(agent.id),
        name=agent.name,
        is_available=bool(agent.is_available),
        earnings_today=summary["todays_earnings"],
        earnings_total=agent.earnings.total,
        earnings_pending=agent.earnings.pending,
        total_deliveries=agent.stats.total_deliveries,
        completion_rate=agent.stats.completion_rate,
        delivered_today=summary["delivered_today"],
        available_orders=summary["available_orders"],
        active_order=ActiveOrderSummary(
            order_id=str(active.id),
            order_number=active.order_number,
            status=active.status,
            delivery_stage=active.delivery_stage,
            station_name=active.delivery_info.station_name if active.delivery_info else None,
            estimated_delivery_at=active.estimated_delivery_at,
        )
        if active
        else None,
    )
