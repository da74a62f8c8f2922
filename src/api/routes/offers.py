"""Staff offer management routes."""

from uuid import UUID

from fastapi import APIRouter, status

from src.api.deps import OfferLedgerDep, StaffContext
from src.schemas.order import OfferCreate, OfferMutationResponse, OfferResponse, OfferUpdate
from src.services.offer_service import OfferMutation

router = APIRouter(prefix="/admin", tags=["offers"])


def _to_response(mutation: OfferMutation) -> OfferMutationResponse:
    return OfferMutationResponse(
        offer=OfferResponse.model_validate(mutation.offer),
        item_state=mutation.item_state,
        order_status=mutation.order_status,
    )


@router.post(
    "/items/{item_id}/offers",
    response_model=OfferMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create offer",
    description="Price a requested part. The first offer on a PENDING order makes it VALUATED.",
)
async def create_offer(
    item_id: UUID, data: OfferCreate, actor: StaffContext, ledger: OfferLedgerDep
) -> OfferMutationResponse:
    mutation = await ledger.create_offer(
        str(item_id),
        manufacturer=data.manufacturer,
        unit_price=data.unit_price,
        quantity_available=data.quantity_available,
        notes=data.notes,
        actor=actor,
    )
    return _to_response(mutation)


@router.patch(
    "/offers/{offer_id}",
    response_model=OfferMutationResponse,
    summary="Update offer",
    description="Update offer fields. Pass the last seen version to detect concurrent edits.",
)
async def update_offer(
    offer_id: UUID, data: OfferUpdate, actor: StaffContext, ledger: OfferLedgerDep
) -> OfferMutationResponse:
    fields = data.model_dump(exclude_unset=True, exclude={"version"})
    mutation = await ledger.update_offer(str(offer_id), fields, actor, expected_version=data.version)
    return _to_response(mutation)


@router.delete(
    "/offers/{offer_id}",
    response_model=OfferMutationResponse,
    summary="Delete offer",
    description=(
        "Delete an offer. Removing the last offer of an item resets the item to REQUESTED "
        "and the whole order to PENDING."
    ),
)
async def delete_offer(offer_id: UUID, actor: StaffContext, ledger: OfferLedgerDep) -> OfferMutationResponse:
    mutation = await ledger.delete_offer(str(offer_id), actor)
    return _to_response(mutation)
