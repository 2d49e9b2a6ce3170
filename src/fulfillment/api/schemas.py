"""Pydantic API schemas for the fulfillment service.

These are the external API contracts, separate from domain commands.
The API layer translates between these schemas and domain commands.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class OrderItemRequest(BaseModel):
    product_id: str
    seller_id: str | None = None
    name: str | None = None
    quantity: int = Field(ge=1)
    unit_price: int = Field(ge=0)
    item_note: str | None = None


class DeliveryInfoRequest(BaseModel):
    delivery_type: str
    contact_name: str
    contact_phone: str
    train_no: str | None = None
    train_name: str | None = None
    coach: str | None = None
    seat: str | None = None
    departure_time: datetime | None = None
    station_name: str | None = None
    platform: str | None = None
    address: str | None = None
    landmark: str | None = None
    special_instructions: str | None = None


class TotalsRequest(BaseModel):
    subtotal: int
    tax: int = 0
    delivery: int = 2000
    discount: int = 0
    final: int
    coupon_code: str | None = None


class PlaceOrderRequest(BaseModel):
    items: list[OrderItemRequest]
    delivery_info: DeliveryInfoRequest
    totals: TotalsRequest
    payment_method: str


class UpdateOrderStatusRequest(BaseModel):
    status: str
    note: str | None = None


class UpdateItemStatusRequest(BaseModel):
    item_status: str
    note: str | None = None


class CancelOrderRequest(BaseModel):
    reason: str | None = None


class ForceCancelOrderRequest(BaseModel):
    reason: str


class RecordPaymentRequest(BaseModel):
    payment_status: str


class VerifyOTPRequest(BaseModel):
    otp: str


class ClaimRequest(BaseModel):
    order_id: str


class DeclineRequest(BaseModel):
    order_id: str
    reason: str | None = None


class DeliveryProofRequest(BaseModel):
    proof_type: str
    reference: str | None = None


class DeliveryStatusRequest(BaseModel):
    order_id: str
    status: str
    station: str | None = None
    proof: DeliveryProofRequest | None = None


class ReportIssueRequest(BaseModel):
    order_id: str
    issue_type: str
    description: str | None = None


class RegisterAgentRequest(BaseModel):
    name: str
    phone: str
    email: str | None = None
    vehicle_type: str | None = None


class AvailabilityRequest(BaseModel):
    is_available: bool


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class OrderIdResponse(BaseModel):
    order_id: str
    order_number: str


class AgentIdResponse(BaseModel):
    agent_id: str


class StatusResponse(BaseModel):
    status: str


class OrderItemResponse(BaseModel):
    item_id: str
    product_id: str
    seller_id: str
    name: str | None = None
    quantity: int
    unit_price: int
    item_status: str
    item_note: str | None = None


class HistoryEntryResponse(BaseModel):
    status: str
    actor_id: str
    actor_role: str | None = None
    note: str | None = None
    recorded_at: datetime


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    customer_id: str
    status: str
    fulfillment_progress: str | None = None
    assigned_driver_id: str | None = None
    delivery_stage: str | None = None
    delivery_type: str | None = None
    actual_station: str | None = None
    payment_method: str | None = None
    payment_status: str | None = None
    final_total: int
    estimated_delivery_at: datetime | None = None
    items: list[OrderItemResponse]
    history: list[HistoryEntryResponse]
    timestamps: dict[str, datetime]


class AvailableOrderResponse(BaseModel):
    order_id: str
    order_number: str
    delivery_type: str | None = None
    station_name: str | None = None
    item_count: int
    final_total: int
    ready_for_pickup_at: datetime | None = None


class ClaimResponse(BaseModel):
    order: OrderResponse
    estimated_delivery_time: datetime | None = None


class DeliveryStatusResponse(BaseModel):
    status: str
    delivery_stage: str | None = None
    timestamps: dict[str, datetime]


class OTPResponse(BaseModel):
    otp: str
    expires_in_seconds: int


class EarningsResponse(BaseModel):
    agent_id: str
    is_available: bool
    active_order_id: str | None = None
    today: int
    total: int
    pending: int
    cash_collected: int
    total_deliveries: int
    successful_deliveries: int
    cancelled_deliveries: int
    completion_rate: float


class AgentDeliveryResponse(BaseModel):
    order_id: str
    order_number: str
    status: str
    delivery_stage: str | None = None
    station_name: str | None = None
    final_total: int
    outcome: str
    assigned_at: datetime
    closed_at: datetime | None = None


class ActiveOrderSummary(BaseModel):
    order_id: str
    order_number: str
    status: str
    delivery_stage: str | None = None
    station_name: str | None = None
    estimated_delivery_at: datetime | None = None


class DashboardResponse(BaseModel):
    agent_id: str
    name: str
    is_available: bool
    earnings_today: int
    earnings_total: int
    earnings_pending: int
    total_deliveries: int
    completion_rate: float
    delivered_today: int
    available_orders: int
    active_order: ActiveOrderSummary | None = None
