"""
Service Request Service - Client job postings that professionals unlock.

NO DICTIONARIES - All operations use strongly typed domain models.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from coinbroker.db.models import ServiceRequest
from coinbroker.exceptions import (
    InvalidInputError,
    ServiceRequestNotFoundError,
    WriteVerificationError,
)
from coinbroker.models.api import RequestStatus
from coinbroker.models.domain import ServiceRequestData

logger = get_logger(__name__)


def request_to_domain(request: ServiceRequest) -> ServiceRequestData:
    """Convert ORM service request to domain model."""
    return ServiceRequestData(
        request_id=request.id,
        client_id=request.client_id,
        title=request.title,
        description=request.description,
        category_id=request.category_id,
        subcategory_id=request.subcategory_id,
        status=RequestStatus(request.status),
        contracted_professional_id=request.contracted_professional_id,
        created_at=request.created_at,
    )


class ServiceRequestService:
    """Creates and reads service requests on behalf of the client-facing collaborator."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def open_request(
        self,
        client_id: UUID,
        title: str,
        description: str = "",
        category_id: UUID | None = None,
        subcategory_id: UUID | None = None,
    ) -> ServiceRequestData:
        """Post a new request in the open state."""
        if not title.strip():
            raise InvalidInputError("Service request title cannot be empty")

        now = datetime.now(UTC)
        request = ServiceRequest(
            id=uuid4(),
            client_id=client_id,
            title=title.strip(),
            description=description,
            category_id=category_id,
            subcategory_id=subcategory_id,
            status=RequestStatus.OPEN,
            contracted_professional_id=None,
            created_at=now,
            updated_at=now,
        )
        self.session.add(request)
        await self.session.flush()

        verified = await self.session.get(ServiceRequest, request.id)
        if verified is None:
            raise WriteVerificationError(f"Service request {request.id} not found after insert")

        await self.session.commit()
        logger.info(
            "service_request_opened",
            request_id=str(request.id),
            client_id=str(client_id),
        )
        return request_to_domain(verified)

    async def get_request(self, request_id: UUID) -> ServiceRequestData:
        """
        Get service request.

        Raises:
            ServiceRequestNotFoundError: request doesn't exist
        """
        stmt = select(ServiceRequest).where(ServiceRequest.id == request_id)
        result = await self.session.execute(stmt)
        request = result.scalar_one_or_none()
        if request is None:
            raise ServiceRequestNotFoundError(request_id)
        return request_to_domain(request)
