"""Garage routes: VINs a signed-in user keeps for repeat orders."""

from uuid import UUID

from fastapi import APIRouter, status

from src.api.deps import CurrentUser, GarageServiceDep
from src.schemas.garage import GarageListResponse, GarageVinCreate, GarageVinResponse, GarageVinUpdate

router = APIRouter(prefix="/garage", tags=["garage"])


@router.get(
    "",
    response_model=GarageListResponse,
    summary="List saved VINs",
)
async def list_vins(user: CurrentUser, service: GarageServiceDep) -> GarageListResponse:
    vins = await service.list_vins(user.user_id)
    return GarageListResponse(vins=[GarageVinResponse.model_validate(v) for v in vins])


@router.post(
    "",
    response_model=GarageVinResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Save a VIN",
    description="Save a vehicle for later orders. Without a label it is named Car 1, Car 2 and so on.",
)
async def save_vin(data: GarageVinCreate, user: CurrentUser, service: GarageServiceDep) -> GarageVinResponse:
    """Save a VIN to the caller's garage.

    Raises:
        ValidationError: 422 if the VIN is already saved.
    """
    garage_vin = await service.save_vin(user.user_id, data.vin, data.label)
    return GarageVinResponse.model_validate(garage_vin)


@router.put(
    "/{vin_id}",
    response_model=GarageVinResponse,
    summary="Rename a saved VIN",
)
async def rename_vin(
    vin_id: UUID, data: GarageVinUpdate, user: CurrentUser, service: GarageServiceDep
) -> GarageVinResponse:
    garage_vin = await service.rename_vin(user.user_id, vin_id, data.label)
    return GarageVinResponse.model_validate(garage_vin)


@router.delete(
    "/{vin_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a saved VIN",
)
async def delete_vin(vin_id: UUID, user: CurrentUser, service: GarageServiceDep) -> None:
    await service.delete_vin(user.user_id, vin_id)
