"""Order API routes for buyers: intake, reads, checkout, payments and comments."""

from fastapi import APIRouter, status

from src.api.deps import (
    CheckoutServiceDep,
    CurrentUser,
    OptionalUser,
    OrderAccessDep,
    OrderServiceDep,
)
from src.schemas.checkout import CheckoutRequest, PaymentSessionCreate, PaymentSessionResponse
from src.schemas.order import (
    CommentCreate,
    CommentResponse,
    OrderCreate,
    OrderCreateResponse,
    OrderDetailResponse,
    OrderListResponse,
    OrderSummaryResponse,
)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "",
    response_model=OrderCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a parts request",
    description="Create a PENDING order. Anonymous callers must provide an email and receive a magic link token.",
)
async def create_order(data: OrderCreate, user: OptionalUser, service: OrderServiceDep) -> OrderCreateResponse:
    """Create a new parts request for a vehicle.

    Args:
        data: VIN and requested part lines.
        user: Authenticated user, if any.
        service: Order service.

    Returns:
        OrderCreateResponse: The created order; guests also get their access token.
    """
    order, token = await service.create_order(data, user)
    return OrderCreateResponse.model_validate({**order, "access_token": token})


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List my orders",
    description="List orders owned by the authenticated user, newest first.",
)
async def list_my_orders(user: CurrentUser, service: OrderServiceDep) -> OrderListResponse:
    orders = await service.list_my_orders(user)
    return OrderListResponse(items=[OrderSummaryResponse.model_validate(o) for o in orders])


@router.get(
    "/{order_id}",
    response_model=OrderDetailResponse,
    summary="Get order details",
    description="Full order aggregate for the owner, a guest with a valid magic link, or staff.",
)
async def get_order(access: OrderAccessDep, service: OrderServiceDep) -> OrderDetailResponse:
    detail = await service.get_order_detail(str(access.order["id"]))
    return OrderDetailResponse.model_validate(detail)


@router.post(
    "/{order_id}/checkout",
    response_model=OrderDetailResponse,
    summary="Submit checkout",
    description="Choose offers and provide shipping and invoice details. The order must be VALUATED.",
)
async def checkout(
    data: CheckoutRequest,
    access: OrderAccessDep,
    checkout_service: CheckoutServiceDep,
    order_service: OrderServiceDep,
) -> OrderDetailResponse:
    """Submit the buyer's checkout.

    Raises:
        NotReadyForCheckoutError: 409 if the order is not VALUATED.
        AuthorizationError: 403 for staff callers.
    """
    order_id = str(access.order["id"])
    await checkout_service.checkout(order_id, access.context, data)
    detail = await order_service.get_order_detail(order_id)
    return OrderDetailResponse.model_validate(detail)


@router.post(
    "/{order_id}/payments",
    response_model=PaymentSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start payment",
    description="Create a Stripe Checkout Session for an order in CHECKOUT.",
)
async def create_payment(
    data: PaymentSessionCreate,
    access: OrderAccessDep,
    service: CheckoutServiceDep,
) -> PaymentSessionResponse:
    result = await service.create_payment_session(
        str(access.order["id"]),
        access.context,
        success_url=str(data.success_url),
        cancel_url=str(data.cancel_url),
    )
    return PaymentSessionResponse(**result)


@router.get(
    "/{order_id}/comments",
    response_model=list[CommentResponse],
    summary="List comments",
    description="Buyers see public comments; staff also see internal ones.",
)
async def list_comments(access: OrderAccessDep, service: OrderServiceDep) -> list[CommentResponse]:
    comments = await service.list_comments(str(access.order["id"]), access.context)
    return [CommentResponse.model_validate(c) for c in comments]


@router.post(
    "/{order_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a comment",
)
async def add_comment(
    data: CommentCreate, access: OrderAccessDep, service: OrderServiceDep
) -> CommentResponse:
    comment = await service.add_comment(access.order, data.body, access.context, data.is_internal)
    return CommentResponse.model_validate(comment)
