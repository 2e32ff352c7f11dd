"""
Tests for API Dependencies.

Tests the service key check, actor header parsing and error translation.
"""

from unittest.mock import patch
from uuid import uuid4

import pytest
from fastapi import HTTPException

from coinbroker.api.dependencies import (
    get_current_admin,
    get_current_professional,
    to_http_exception,
    verify_api_key,
)
from coinbroker.exceptions import (
    CapacityReachedError,
    DataIntegrityError,
    IdempotencyConflictError,
    InsufficientBalanceError,
)


class TestVerifyApiKey:
    """Tests for verify_api_key."""

    async def test_no_key_configured_allows_everything(self) -> None:
        with patch("coinbroker.api.dependencies.settings") as mock_settings:
            mock_settings.api_key = None
            await verify_api_key(None)

    async def test_matching_key_is_accepted(self) -> None:
        with patch("coinbroker.api.dependencies.settings") as mock_settings:
            mock_settings.api_key = "cb_service_key"
            await verify_api_key("cb_service_key")

    @pytest.mark.parametrize("presented", [None, "", "wrong_key"])
    async def test_wrong_or_missing_key_is_rejected(self, presented: str | None) -> None:
        with patch("coinbroker.api.dependencies.settings") as mock_settings:
            mock_settings.api_key = "cb_service_key"
            with pytest.raises(HTTPException) as exc_info:
                await verify_api_key(presented)

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail["error"] == "unauthorized"


class TestActorHeaders:
    """Tests for actor identity parsing."""

    async def test_professional_id_is_parsed(self) -> None:
        professional_id = uuid4()

        actor = await get_current_professional(str(professional_id), None)

        assert actor.professional_id == professional_id

    async def test_admin_id_is_parsed(self) -> None:
        admin_id = uuid4()

        actor = await get_current_admin(str(admin_id), None)

        assert actor.admin_id == admin_id

    async def test_missing_header_is_unauthorized(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await get_current_professional(None, None)

        assert exc_info.value.status_code == 401

    async def test_malformed_id_is_bad_request(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await get_current_admin("not-a-uuid", None)

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail["error"] == "invalid_input"


class TestToHttpException:
    """Tests for error translation."""

    def test_business_error_exposes_code_and_message(self) -> None:
        exc = CapacityReachedError(uuid4(), 4)

        http_exc = to_http_exception(exc)

        assert http_exc.status_code == 409
        assert http_exc.detail["error"] == "capacity_reached"
        assert http_exc.detail["message"] == str(exc)

    def test_insufficient_balance_is_payment_required(self) -> None:
        http_exc = to_http_exception(InsufficientBalanceError(10, 15))

        assert http_exc.status_code == 402
        assert http_exc.detail["error"] == "insufficient_balance"

    def test_idempotency_conflict_carries_existing_id(self) -> None:
        existing_id = uuid4()

        http_exc = to_http_exception(IdempotencyConflictError(existing_id))

        assert http_exc.status_code == 409
        assert http_exc.headers == {"X-Existing-Transaction-ID": str(existing_id)}

    def test_internal_error_hides_detail(self) -> None:
        http_exc = to_http_exception(DataIntegrityError("balance 85 != 999 for professional"))

        assert http_exc.status_code == 500
        assert "999" not in http_exc.detail["message"]
        assert http_exc.detail["error"] == "data_integrity"
