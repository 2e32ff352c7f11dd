"""
Admin API routes for managing the coin marketplace.

Refund review queue, manual coin credits, bans and marketplace pricing.
The administrator is identified by the X-Admin-Id header set by the gateway.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from coinbroker.api.dependencies import AdminActor, get_current_admin, to_http_exception
from coinbroker.api.routes import (
    config_response,
    ledger_entry_response,
    professional_response,
    refund_response,
)
from coinbroker.db.session import get_db
from coinbroker.exceptions import MarketplaceError
from coinbroker.models.api import (
    AdminCreditRequest,
    BanRequest,
    LedgerEntryResponse,
    MarketplaceConfigResponse,
    MarketplaceConfigUpdateRequest,
    ProfessionalResponse,
    RefundListResponse,
    RefundPath,
    RefundSettlementResponse,
    RefundStatsResponse,
    RefundStatus,
    ResolveRefundRequest,
)
from coinbroker.models.domain import ConfigUpdate
from coinbroker.observability.metrics import metrics
from coinbroker.services.ledger import LedgerService
from coinbroker.services.marketplace_config import MarketplaceConfigProvider
from coinbroker.services.moderation import ModerationService
from coinbroker.services.refunds import RefundService

logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


# ============================================================================
# Refund review
# ============================================================================


@router.get("/refunds", response_model=RefundListResponse)
async def list_refunds(
    status: RefundStatus | None = Query(None),
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(get_current_admin),
) -> RefundListResponse:
    """Refund queue with per-status counts."""
    service = RefundService(db)
    refunds = await service.list_refunds(status)
    stats = await service.refund_stats()

    return RefundListResponse(
        refunds=[refund_response(refund) for refund in refunds],
        stats=RefundStatsResponse(
            pending=stats.pending,
            approved=stats.approved,
            denied=stats.denied,
            total=stats.total,
        ),
    )


@router.post("/refunds/{refund_id}/resolve", response_model=RefundSettlementResponse)
async def resolve_refund(
    refund_id: UUID,
    request: ResolveRefundRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(get_current_admin),
) -> RefundSettlementResponse:
    """Approve (full refund of the coins spent) or deny a pending dispute."""
    service = RefundService(db)
    try:
        result = await service.resolve_refund(
            refund_id,
            admin.admin_id,
            RefundStatus(request.decision),
            request.admin_response,
        )
    except MarketplaceError as exc:
        metrics.record_refund(RefundPath.MANUAL.value, "failed", error_type=exc.code)
        raise to_http_exception(exc) from exc

    metrics.record_refund(
        RefundPath.MANUAL.value, result.refund.status.value, amount=result.coins_refunded
    )

    if result.refund.status == RefundStatus.APPROVED:
        message = f"Refund approved, {result.coins_refunded} coins returned"
    else:
        message = "Refund denied"

    return RefundSettlementResponse(
        refund=refund_response(result.refund),
        coins_refunded=result.coins_refunded,
        new_balance=result.new_balance,
        message=message,
    )


# ============================================================================
# Professionals
# ============================================================================


@router.post("/professionals/{professional_id}/credits", response_model=LedgerEntryResponse)
async def grant_coins(
    professional_id: UUID,
    request: AdminCreditRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(get_current_admin),
) -> LedgerEntryResponse:
    """Credit coins to a professional by hand."""
    service = LedgerService(db)
    try:
        entry = await service.grant_coins(
            professional_id, request.coins, admin.admin_id, request.reason
        )
    except MarketplaceError as exc:
        metrics.record_error(exc.code, "grant_coins")
        raise to_http_exception(exc) from exc

    metrics.record_ledger_credit(entry.transaction_type.value)
    return ledger_entry_response(entry)


@router.post("/professionals/{professional_id}/ban", response_model=ProfessionalResponse)
async def set_ban(
    professional_id: UUID,
    request: BanRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(get_current_admin),
) -> ProfessionalResponse:
    """Ban or unban a professional. Banned professionals cannot unlock contacts."""
    service = ModerationService(db)
    try:
        professional = await service.set_ban(
            professional_id, request.banned, admin.admin_id, request.reason
        )
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc

    return professional_response(professional)


# ============================================================================
# Marketplace configuration
# ============================================================================


@router.get("/config", response_model=MarketplaceConfigResponse)
async def get_config(
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(get_current_admin),
) -> MarketplaceConfigResponse:
    """Current marketplace configuration."""
    provider = MarketplaceConfigProvider(db)
    return config_response(await provider.get())


@router.patch("/config", response_model=MarketplaceConfigResponse)
async def update_config(
    request: MarketplaceConfigUpdateRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(get_current_admin),
) -> MarketplaceConfigResponse:
    """
    Change prices or refund policy.

    New values apply to future unlocks and refunds only.
    """
    provider = MarketplaceConfigProvider(db)
    changes = ConfigUpdate(
        unlock_cost_normal=request.unlock_cost_normal,
        unlock_cost_exclusive=request.unlock_cost_exclusive,
        max_professionals_per_request=request.max_professionals_per_request,
        refund_percentage=request.refund_percentage,
        refund_window_days=request.refund_window_days,
    )
    try:
        config = await provider.update(changes, admin.admin_id)
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc

    logger.info("admin_config_update", admin_id=str(admin.admin_id), version=config.version)
    return config_response(config)
