"""Unit tests for GarageService."""

from unittest.mock import MagicMock, patch
from uuid import UUID

import pytest
from postgrest.exceptions import APIError as PostgrestAPIError

from src.api.middleware.error_handler import AuthorizationError, NotFoundError, ValidationError
from src.services.garage_service import GarageService

USER_ID = UUID("22222222-2222-4222-8222-222222222222")
OTHER_ID = UUID("33333333-3333-4333-8333-333333333333")
VIN_ID = UUID("55555555-5555-4555-8555-555555555555")
VIN = "WVWZZZ1JZXW000001"


def response(data=None, count=None) -> MagicMock:
    result = MagicMock()
    result.data = data
    result.count = count
    return result


@pytest.fixture
def mock_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def service(mock_client: MagicMock) -> GarageService:
    with patch("src.services.garage_service.get_supabase_client", return_value=mock_client):
        return GarageService()


def stored_vin(user_id: UUID = USER_ID) -> dict:
    return {
        "id": str(VIN_ID),
        "user_id": str(user_id),
        "vin": VIN,
        "label": "Car 1",
        "created_at": "2026-03-01T10:00:00+00:00",
    }


class TestSaveVin:
    """Tests for saving VINs."""

    @pytest.mark.asyncio
    async def test_default_label_counts_saved_vins(self, service: GarageService, mock_client: MagicMock) -> None:
        table = mock_client.table.return_value
        table.select.return_value.eq.return_value.eq.return_value.execute.return_value = response([])
        table.select.return_value.eq.return_value.execute.return_value = response([], count=2)
        table.insert.return_value.execute.return_value = response([{**stored_vin(), "label": "Car 3"}])

        result = await service.save_vin(USER_ID, VIN)

        assert result["label"] == "Car 3"
        table.insert.assert_called_once_with({"user_id": str(USER_ID), "vin": VIN, "label": "Car 3"})

    @pytest.mark.asyncio
    async def test_explicit_label_kept(self, service: GarageService, mock_client: MagicMock) -> None:
        table = mock_client.table.return_value
        table.select.return_value.eq.return_value.eq.return_value.execute.return_value = response([])
        table.insert.return_value.execute.return_value = response([{**stored_vin(), "label": "Golf"}])

        await service.save_vin(USER_ID, VIN, "Golf")

        table.insert.assert_called_once_with({"user_id": str(USER_ID), "vin": VIN, "label": "Golf"})

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, service: GarageService, mock_client: MagicMock) -> None:
        table = mock_client.table.return_value
        table.select.return_value.eq.return_value.eq.return_value.execute.return_value = response([{"id": str(VIN_ID)}])

        with pytest.raises(ValidationError, match="already in your garage"):
            await service.save_vin(USER_ID, VIN, "Golf")

        table.insert.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_rejected(self, service: GarageService, mock_client: MagicMock) -> None:
        table = mock_client.table.return_value
        table.select.return_value.eq.return_value.eq.return_value.execute.return_value = response([])
        table.insert.return_value.execute.side_effect = PostgrestAPIError(
            {"message": "duplicate key value", "code": "23505", "details": None, "hint": None}
        )

        with pytest.raises(ValidationError):
            await service.save_vin(USER_ID, VIN, "Golf")


class TestManageVin:
    """Tests for renaming and deleting saved VINs."""

    @pytest.mark.asyncio
    async def test_rename_own_vin(self, service: GarageService, mock_client: MagicMock) -> None:
        table = mock_client.table.return_value
        table.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = response(stored_vin())
        table.update.return_value.eq.return_value.execute.return_value = response([{**stored_vin(), "label": "Golf"}])

        result = await service.rename_vin(USER_ID, VIN_ID, "Golf")

        assert result["label"] == "Golf"
        assert table.update.call_args.args[0]["label"] == "Golf"

    @pytest.mark.asyncio
    async def test_missing_vin(self, service: GarageService, mock_client: MagicMock) -> None:
        mock_client.table.return_value.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = None

        with pytest.raises(NotFoundError):
            await service.delete_vin(USER_ID, VIN_ID)

    @pytest.mark.asyncio
    async def test_foreign_vin_untouched(self, service: GarageService, mock_client: MagicMock) -> None:
        table = mock_client.table.return_value
        table.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = response(
            stored_vin(OTHER_ID)
        )

        with pytest.raises(AuthorizationError):
            await service.rename_vin(USER_ID, VIN_ID, "Mine now")
        with pytest.raises(AuthorizationError):
            await service.delete_vin(USER_ID, VIN_ID)

        table.update.assert_not_called()
        table.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_own_vin(self, service: GarageService, mock_client: MagicMock) -> None:
        table = mock_client.table.return_value
        table.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = response(stored_vin())

        await service.delete_vin(USER_ID, VIN_ID)

        table.delete.return_value.eq.assert_called_once_with("id", str(VIN_ID))
