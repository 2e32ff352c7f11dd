"""
FastAPI Dependencies - Caller identity and error translation.

NO DICTIONARIES - All dependencies return typed objects.

Authentication itself happens upstream: the gateway verifies the caller
and forwards the actor id in a trusted header. This service only checks
the shared service key and parses the actor id.
"""

import hmac
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from structlog import get_logger

from coinbroker.config import settings
from coinbroker.exceptions import (
    IdempotencyConflictError,
    InsufficientBalanceError,
    InvalidInputError,
    MarketplaceError,
    NoAccessError,
    NotFoundError,
    StateConflictError,
)
from coinbroker.models.api import ErrorDetail

logger = get_logger(__name__)


# ============================================================================
# Service key
# ============================================================================


async def verify_api_key(x_api_key: str | None = Header(None)) -> None:
    """
    Require the shared service key when one is configured.

    Raises:
        HTTPException: 401 if the key is missing or wrong
    """
    if not settings.api_key:
        return

    if x_api_key is None or not hmac.compare_digest(x_api_key, settings.api_key):
        logger.warning("api_key_rejected", key_present=x_api_key is not None)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=ErrorDetail(error="unauthorized", message="Invalid or missing API key").model_dump(),
        )


# ============================================================================
# Actor identity
# ============================================================================


@dataclass(frozen=True)
class ProfessionalActor:
    """Professional on whose behalf the request is made."""

    professional_id: UUID


@dataclass(frozen=True)
class AdminActor:
    """Administrator on whose behalf the request is made."""

    admin_id: UUID


def _parse_actor_id(value: str | None, header_name: str) -> UUID:
    if not value:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=ErrorDetail(
                error="unauthorized", message=f"Missing {header_name} header"
            ).model_dump(),
        )
    try:
        return UUID(value)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ErrorDetail(
                error="invalid_input", message=f"{header_name} must be a UUID"
            ).model_dump(),
        ) from exc


async def get_current_professional(
    x_professional_id: str | None = Header(None),
    _: None = Depends(verify_api_key),
) -> ProfessionalActor:
    """Professional identity from the X-Professional-Id header."""
    return ProfessionalActor(
        professional_id=_parse_actor_id(x_professional_id, "X-Professional-Id")
    )


async def get_current_admin(
    x_admin_id: str | None = Header(None),
    _: None = Depends(verify_api_key),
) -> AdminActor:
    """Administrator identity from the X-Admin-Id header."""
    return AdminActor(admin_id=_parse_actor_id(x_admin_id, "X-Admin-Id"))


# ============================================================================
# Error translation
# ============================================================================


def error_status_code(exc: MarketplaceError) -> int:
    """HTTP status for a marketplace error kind."""
    if isinstance(exc, InsufficientBalanceError):
        return status.HTTP_402_PAYMENT_REQUIRED
    if isinstance(exc, NoAccessError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, StateConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, InvalidInputError):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def to_http_exception(exc: MarketplaceError) -> HTTPException:
    """
    Translate a marketplace error into an HTTPException.

    Business rejections expose their code and message. Infrastructure
    failures are logged and reported without internal detail.
    """
    status_code = error_status_code(exc)

    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("marketplace_internal_error", error_type=type(exc).__name__, error=str(exc))
        return HTTPException(
            status_code=status_code,
            detail=ErrorDetail(error=exc.code, message="Database integrity error").model_dump(),
        )

    headers = None
    if isinstance(exc, IdempotencyConflictError):
        headers = {"X-Existing-Transaction-ID": str(exc.existing_id)}

    return HTTPException(
        status_code=status_code,
        detail=ErrorDetail(error=exc.code, message=str(exc)).model_dump(),
        headers=headers,
    )
