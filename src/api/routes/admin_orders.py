"""Staff order routes: listing and explicit status transitions."""

from uuid import UUID

from fastapi import APIRouter, Query

from src.api.deps import OrderServiceDep, StaffContext, StateMachineDep
from src.models.order import OrderStatus
from src.schemas.order import OrderListResponse, OrderSummaryResponse, StatusUpdateRequest

router = APIRouter(prefix="/admin/orders", tags=["admin"])


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List orders",
    description="List all orders, optionally filtered by status.",
)
async def list_orders(
    actor: StaffContext,
    service: OrderServiceDep,
    status: OrderStatus | None = Query(default=None, description="Filter by order status"),
    limit: int = Query(default=100, ge=1, le=500),
) -> OrderListResponse:
    orders = await service.list_orders(status, limit)
    return OrderListResponse(items=[OrderSummaryResponse.model_validate(o) for o in orders])


@router.patch(
    "/{order_id}/status",
    response_model=OrderSummaryResponse,
    summary="Change order status",
    description="Explicit staff transition. Disallowed edges return 409 invalid_transition.",
)
async def change_status(
    order_id: UUID,
    data: StatusUpdateRequest,
    actor: StaffContext,
    state_machine: StateMachineDep,
) -> OrderSummaryResponse:
    order = await state_machine.transition(str(order_id), data.status, actor, data.reason)
    return OrderSummaryResponse.model_validate(order)
