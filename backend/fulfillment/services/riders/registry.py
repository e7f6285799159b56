"""Rider availability registry.

A rider is either Available or Not Available. Claiming a rider for a new
delivery only succeeds while it is Available, enforced by a conditional
update; releasing is idempotent.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.exceptions import ConflictError, NotFoundError
from fulfillment.core.logging import get_logger
from fulfillment.database.models.delivery import Rider
from fulfillment.services.orders.enums import RiderStatus
from fulfillment.services.riders.repository import RiderRepository

logger = get_logger(__name__)


class RiderUnavailableError(ConflictError):
    """Raised when a rider is already holding a delivery."""

    code = "RIDER_UNAVAILABLE"


class RiderAvailabilityRegistry:
    """Tracks rider availability and hands riders out one delivery at a time."""

    def __init__(
        self,
        session: AsyncSession,
        repository: Optional[RiderRepository] = None,
    ):
        self.repository = repository or RiderRepository(session)

    async def get_rider(self, rider_id: uuid.UUID) -> Rider:
        """
        Get a rider or fail.

        Raises:
            NotFoundError: If the rider does not exist
        """
        rider = await self.repository.get_rider(rider_id)
        if rider is None:
            raise NotFoundError("Rider not found", rider_id=str(rider_id))
        return rider

    async def get_rider_for_user(self, user_id: uuid.UUID) -> Rider:
        """
        Get the rider record of a user account.

        Raises:
            NotFoundError: If the user has no rider record
        """
        rider = await self.repository.get_rider_by_user(user_id)
        if rider is None:
            raise NotFoundError("Rider record not found", user_id=str(user_id))
        return rider

    async def ensure_available(self, rider_id: uuid.UUID) -> Rider:
        """
        Check that a rider exists and can take a delivery.

        Raises:
            NotFoundError: If the rider does not exist
            RiderUnavailableError: If the rider is Not Available
        """
        rider = await self.get_rider(rider_id)
        if rider.status != RiderStatus.AVAILABLE:
            raise RiderUnavailableError(
                "Rider is not available",
                rider_id=str(rider_id),
                status=rider.status.value,
            )
        return rider

    async def assign(self, rider_id: uuid.UUID) -> None:
        """
        Mark an Available rider as Not Available.

        The write only matches while the rider is still Available, so two
        concurrent assignments cannot both claim the same rider.

        Raises:
            NotFoundError: If the rider does not exist
            RiderUnavailableError: If the rider was not Available
            RepositoryError: If the store write fails
        """
        claimed = await self.repository.transition_status(
            rider_id,
            RiderStatus.NOT_AVAILABLE,
            expected_status=RiderStatus.AVAILABLE,
        )
        if claimed:
            logger.info("Rider assigned", rider_id=str(rider_id))
            return

        rider = await self.get_rider(rider_id)
        raise RiderUnavailableError(
            "Rider is not available",
            rider_id=str(rider_id),
            status=rider.status.value,
        )

    async def release(self, rider_id: uuid.UUID) -> None:
        """
        Mark a rider as Available. Safe to call when already Available.

        Raises:
            NotFoundError: If the rider does not exist
            RepositoryError: If the store write fails
        """
        updated = await self.repository.transition_status(
            rider_id,
            RiderStatus.AVAILABLE,
        )
        if not updated:
            raise NotFoundError("Rider not found", rider_id=str(rider_id))

        logger.info("Rider released", rider_id=str(rider_id))

    async def list_available(self) -> Sequence[Rider]:
        return await self.repository.list_by_status(RiderStatus.AVAILABLE)
