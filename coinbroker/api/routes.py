"""
API Routes - FastAPI endpoints for professionals and internal collaborators.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from coinbroker.api.dependencies import (
    ProfessionalActor,
    get_current_professional,
    to_http_exception,
    verify_api_key,
)
from coinbroker.db.session import get_db
from coinbroker.exceptions import MarketplaceError
from coinbroker.models.api import (
    AutomaticRefundRequest,
    BalanceResponse,
    CloseDealRequest,
    CloseDealResponse,
    CreateProfessionalRequest,
    CreateServiceRequestRequest,
    HealthResponse,
    LedgerEntryResponse,
    ManualRefundRequest,
    MarketplaceConfigResponse,
    ProfessionalResponse,
    PurchaseCreditRequest,
    RefundListResponse,
    RefundPath,
    RefundResponse,
    RefundSettlementResponse,
    ServiceRequestResponse,
    TransactionListResponse,
    UnlockContactRequest,
    UnlockItem,
    UnlockListResponse,
    UnlockResponse,
)
from coinbroker.models.domain import (
    ConfigSnapshot,
    LedgerEntryData,
    ProfessionalData,
    RefundData,
    ServiceRequestData,
)
from coinbroker.observability.metrics import metrics
from coinbroker.services.deal_outcome import DealOutcomeService
from coinbroker.services.ledger import LedgerService
from coinbroker.services.marketplace_config import MarketplaceConfigProvider
from coinbroker.services.refunds import RefundService
from coinbroker.services.service_requests import ServiceRequestService
from coinbroker.services.unlock import UnlockService

router = APIRouter()


# ============================================================================
# Response builders
# ============================================================================


def professional_response(professional: ProfessionalData) -> ProfessionalResponse:
    return ProfessionalResponse(
        professional_id=professional.professional_id,
        coin_balance=professional.coin_balance,
        banned=professional.banned,
        ban_reason=professional.ban_reason,
        created_at=professional.created_at.isoformat(),
    )


def ledger_entry_response(entry: LedgerEntryData) -> LedgerEntryResponse:
    return LedgerEntryResponse(
        transaction_id=entry.transaction_id,
        professional_id=entry.professional_id,
        quantity=entry.quantity,
        transaction_type=entry.transaction_type,
        description=entry.description,
        balance_before=entry.balance_before,
        balance_after=entry.balance_after,
        external_reference=entry.external_reference,
        created_at=entry.created_at.isoformat(),
    )


def refund_response(refund: RefundData) -> RefundResponse:
    return RefundResponse(
        refund_id=refund.refund_id,
        unlock_id=refund.unlock_id,
        service_request_id=refund.request_id,
        professional_id=refund.professional_id,
        client_id=refund.client_id,
        path=refund.path,
        status=refund.status,
        contact_type=refund.contact_type,
        coins_spent=refund.coins_spent,
        refund_amount=refund.refund_amount,
        reason=refund.reason,
        evidence_urls=list(refund.evidence_urls),
        admin_id=refund.admin_id,
        admin_response=refund.admin_response,
        resolved_at=refund.resolved_at.isoformat() if refund.resolved_at else None,
        created_at=refund.created_at.isoformat(),
    )


def config_response(config: ConfigSnapshot) -> MarketplaceConfigResponse:
    return MarketplaceConfigResponse(
        version=config.version,
        unlock_cost_normal=config.unlock_cost_normal,
        unlock_cost_exclusive=config.unlock_cost_exclusive,
        max_professionals_per_request=config.max_professionals_per_request,
        refund_percentage=config.refund_percentage,
        refund_window_days=config.refund_window_days,
    )


def _service_request_response(request: ServiceRequestData) -> ServiceRequestResponse:
    return ServiceRequestResponse(
        service_request_id=request.request_id,
        client_id=request.client_id,
        title=request.title,
        description=request.description,
        category_id=request.category_id,
        subcategory_id=request.subcategory_id,
        status=request.status,
        contracted_professional_id=request.contracted_professional_id,
        created_at=request.created_at.isoformat(),
    )


# ============================================================================
# Professional: balance and history
# ============================================================================


@router.get("/v1/professionals/me/balance", response_model=BalanceResponse)
async def get_my_balance(
    db: AsyncSession = Depends(get_db),
    actor: ProfessionalActor = Depends(get_current_professional),
) -> BalanceResponse:
    """Current coin balance of the calling professional."""
    service = LedgerService(db)
    try:
        balance = await service.get_balance(actor.professional_id)
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc

    return BalanceResponse(professional_id=actor.professional_id, coin_balance=balance)


@router.get("/v1/professionals/me/transactions", response_model=TransactionListResponse)
async def list_my_transactions(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    actor: ProfessionalActor = Depends(get_current_professional),
) -> TransactionListResponse:
    """Ledger history of the calling professional, newest first."""
    service = LedgerService(db)
    entries, total = await service.list_transactions(actor.professional_id, limit, offset)

    return TransactionListResponse(
        transactions=[ledger_entry_response(entry) for entry in entries],
        total=total,
        has_more=offset + len(entries) < total,
    )


# ============================================================================
# Professional: unlocks and deals
# ============================================================================


@router.get("/v1/professionals/me/unlocks", response_model=UnlockListResponse)
async def list_my_unlocks(
    db: AsyncSession = Depends(get_db),
    actor: ProfessionalActor = Depends(get_current_professional),
) -> UnlockListResponse:
    """Contacts unlocked by the calling professional."""
    service = UnlockService(db)
    unlocks = await service.list_unlocks(actor.professional_id)

    return UnlockListResponse(
        unlocks=[
            UnlockItem(
                unlock_id=unlock.unlock_id,
                service_request_id=unlock.request_id,
                exclusive=unlock.exclusive,
                contact_unlocked=unlock.contact_unlocked,
                deal_closed=unlock.deal_closed,
                coins_spent=unlock.coins_spent,
                created_at=unlock.created_at.isoformat(),
            )
            for unlock in unlocks
        ]
    )


@router.post(
    "/v1/professionals/me/unlocks",
    response_model=UnlockResponse,
    status_code=status.HTTP_201_CREATED,
)
async def unlock_contact(
    request: UnlockContactRequest,
    db: AsyncSession = Depends(get_db),
    actor: ProfessionalActor = Depends(get_current_professional),
) -> UnlockResponse:
    """
    Spend coins to unlock a client's contact.

    Exclusive unlocks cost more and take the request out of the open pool.
    """
    service = UnlockService(db)
    try:
        result = await service.unlock_contact(
            actor.professional_id, request.service_request_id, request.exclusive
        )
    except MarketplaceError as exc:
        metrics.record_unlock(request.exclusive, success=False, error_type=exc.code)
        raise to_http_exception(exc) from exc

    metrics.record_unlock(request.exclusive, success=True, cost=result.unlock.coins_spent)

    return UnlockResponse(
        unlock_id=result.unlock.unlock_id,
        service_request_id=result.unlock.request_id,
        exclusive=result.unlock.exclusive,
        coins_spent=result.unlock.coins_spent,
        new_balance=result.new_balance,
        request_status=result.request_status,
        message="Exclusive contact unlocked" if result.unlock.exclusive else "Contact unlocked",
    )


@router.post("/v1/professionals/me/deals", response_model=CloseDealResponse)
async def close_deal(
    request: CloseDealRequest,
    db: AsyncSession = Depends(get_db),
    actor: ProfessionalActor = Depends(get_current_professional),
) -> CloseDealResponse:
    """Record that the client hired the calling professional."""
    service = DealOutcomeService(db)
    try:
        closure = await service.mark_deal_closed(actor.professional_id, request.service_request_id)
    except MarketplaceError as exc:
        metrics.record_deal_closed(success=False, error_type=exc.code)
        raise to_http_exception(exc) from exc

    metrics.record_deal_closed(success=True)

    return CloseDealResponse(
        unlock_id=closure.unlock_id,
        service_request_id=closure.request_id,
        request_status=closure.request_status,
        contracted_professional_id=closure.contracted_professional_id,
        message="Deal closed",
    )


# ============================================================================
# Professional: refunds
# ============================================================================


@router.post("/v1/professionals/me/refunds/automatic", response_model=RefundSettlementResponse)
async def request_automatic_refund(
    request: AutomaticRefundRequest,
    db: AsyncSession = Depends(get_db),
    actor: ProfessionalActor = Depends(get_current_professional),
) -> RefundSettlementResponse:
    """Claim the automatic partial refund when the client never answered."""
    service = RefundService(db)
    try:
        result = await service.request_automatic_refund(actor.professional_id, request.unlock_id)
    except MarketplaceError as exc:
        metrics.record_refund(RefundPath.AUTOMATIC.value, "failed", error_type=exc.code)
        raise to_http_exception(exc) from exc

    metrics.record_refund(
        RefundPath.AUTOMATIC.value, result.refund.status.value, amount=result.coins_refunded
    )

    return RefundSettlementResponse(
        refund=refund_response(result.refund),
        coins_refunded=result.coins_refunded,
        new_balance=result.new_balance,
        message=f"{result.coins_refunded} coins refunded",
    )


@router.post(
    "/v1/professionals/me/refunds",
    response_model=RefundResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_refund_request(
    request: ManualRefundRequest,
    db: AsyncSession = Depends(get_db),
    actor: ProfessionalActor = Depends(get_current_professional),
) -> RefundResponse:
    """File a refund dispute for administrator review."""
    service = RefundService(db)
    try:
        refund = await service.submit_refund_request(
            actor.professional_id, request.unlock_id, request.reason, request.evidence_urls
        )
    except MarketplaceError as exc:
        metrics.record_refund(RefundPath.MANUAL.value, "failed", error_type=exc.code)
        raise to_http_exception(exc) from exc

    metrics.record_refund(RefundPath.MANUAL.value, refund.status.value)
    return refund_response(refund)


@router.get("/v1/professionals/me/refunds", response_model=RefundListResponse)
async def list_my_refunds(
    db: AsyncSession = Depends(get_db),
    actor: ProfessionalActor = Depends(get_current_professional),
) -> RefundListResponse:
    """Refunds filed by the calling professional."""
    service = RefundService(db)
    refunds = await service.list_refunds_for_professional(actor.professional_id)
    return RefundListResponse(refunds=[refund_response(refund) for refund in refunds])


# ============================================================================
# Internal collaborators
# ============================================================================


@router.post(
    "/v1/professionals",
    response_model=ProfessionalResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_api_key)],
)
async def open_professional_account(
    request: CreateProfessionalRequest,
    db: AsyncSession = Depends(get_db),
) -> ProfessionalResponse:
    """
    Registration hook: create a zero-balance account.

    Repeating the call returns the existing account.
    """
    service = LedgerService(db)
    try:
        professional = await service.open_account(request.professional_id)
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc

    return professional_response(professional)


@router.post(
    "/v1/ledger/purchases",
    response_model=LedgerEntryResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_api_key)],
)
async def record_purchase(
    request: PurchaseCreditRequest,
    db: AsyncSession = Depends(get_db),
) -> LedgerEntryResponse:
    """
    Credit coins after a confirmed payment.

    The payment reference is the idempotency key; a repeated delivery
    returns 409 with X-Existing-Transaction-ID.
    """
    service = LedgerService(db)
    try:
        entry = await service.record_purchase(
            request.professional_id,
            request.coins,
            request.payment_reference,
            request.description,
        )
    except MarketplaceError as exc:
        metrics.record_error(exc.code, "record_purchase")
        raise to_http_exception(exc) from exc

    metrics.record_ledger_credit(entry.transaction_type.value)
    return ledger_entry_response(entry)


@router.post(
    "/v1/service-requests",
    response_model=ServiceRequestResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_api_key)],
)
async def open_service_request(
    request: CreateServiceRequestRequest,
    db: AsyncSession = Depends(get_db),
) -> ServiceRequestResponse:
    """Publish a client's service request."""
    service = ServiceRequestService(db)
    try:
        created = await service.open_request(
            client_id=request.client_id,
            title=request.title,
            description=request.description,
            category_id=request.category_id,
            subcategory_id=request.subcategory_id,
        )
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc

    return _service_request_response(created)


@router.get(
    "/v1/service-requests/{request_id}",
    response_model=ServiceRequestResponse,
    dependencies=[Depends(verify_api_key)],
)
async def get_service_request(
    request_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ServiceRequestResponse:
    """Service request with its current status."""
    service = ServiceRequestService(db)
    try:
        found = await service.get_request(request_id)
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc

    return _service_request_response(found)


@router.get(
    "/v1/config",
    response_model=MarketplaceConfigResponse,
    dependencies=[Depends(verify_api_key)],
)
async def get_public_config(db: AsyncSession = Depends(get_db)) -> MarketplaceConfigResponse:
    """Current prices and refund policy, for display in the clients."""
    provider = MarketplaceConfigProvider(db)
    return config_response(await provider.get())


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))

        return HealthResponse(
            status="healthy",
            database="connected",
            timestamp=datetime.now(UTC).isoformat(),
        )

    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(exc),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc
