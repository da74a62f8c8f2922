"""Garage (saved vehicles) Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.schemas.order import VIN_RE


class GarageVinCreate(BaseModel):
    """Request schema for saving a VIN."""

    model_config = ConfigDict(str_strip_whitespace=True)

    vin: str = Field(..., description="17-character Vehicle Identification Number")
    label: str | None = Field(default=None, min_length=1, max_length=100, description="Name shown in the garage")

    @field_validator("vin")
    @classmethod
    def validate_vin(cls, value: str) -> str:
        vin = value.upper()
        if not VIN_RE.match(vin):
            raise ValueError("VIN must be 17 characters, letters I, O and Q are not allowed")
        return vin


class GarageVinUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    label: str = Field(..., min_length=1, max_length=100)


class GarageVinResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    vin: str
    label: str
    created_at: datetime
    updated_at: datetime | None = None


class GarageListResponse(BaseModel):
    vins: list[GarageVinResponse]
