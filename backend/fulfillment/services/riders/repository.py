"""
Rider data access repository.

Availability changes go through single conditional UPDATE statements so the
affected-row count tells whether the rider was actually claimed.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from fulfillment.core.logging import get_logger
from fulfillment.database.models.delivery import Rider
from fulfillment.database.repository import BaseRepository
from fulfillment.services.orders.enums import RiderStatus

logger = get_logger(__name__)


class RiderRepository(BaseRepository):
    """Repository for rider lookups and availability writes."""

    async def get_rider(self, rider_id: uuid.UUID) -> Optional[Rider]:
        """
        Get rider by ID.

        Raises:
            RepositoryError: If query fails
        """
        try:
            result = await self.session.execute(
                select(Rider)
                .where(Rider.id == rider_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self._fail("fetch rider", e, rider_id=str(rider_id))

    async def get_rider_by_user(self, user_id: uuid.UUID) -> Optional[Rider]:
        """Get the rider record belonging to a user account."""
        try:
            result = await self.session.execute(
                select(Rider).where(Rider.user_id == user_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self._fail("fetch rider by user", e, user_id=str(user_id))

    async def list_by_status(self, status: RiderStatus) -> Sequence[Rider]:
        """List riders with the given availability, by name."""
        try:
            result = await self.session.execute(
                select(Rider).where(Rider.status == status).order_by(Rider.name)
            )
            return result.scalars().all()
        except SQLAlchemyError as e:
            await self._fail("list riders", e, status=status.value)

    async def transition_status(
        self,
        rider_id: uuid.UUID,
        new_status: RiderStatus,
        expected_status: Optional[RiderStatus] = None,
    ) -> bool:
        """
        Set rider status, optionally only when it currently has a given value.

        Args:
            rider_id: Rider identifier
            new_status: Status to set
            expected_status: Required current status, None for unconditional

        Returns:
            True when a row was updated

        Raises:
            RepositoryError: If the update fails
        """
        stmt = update(Rider).where(Rider.id == rider_id)
        if expected_status is not None:
            stmt = stmt.where(Rider.status == expected_status)

        try:
            result = await self.session.execute(
                stmt.values(status=new_status).execution_options(
                    synchronize_session=False
                )
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._fail(
                "update rider status",
                e,
                rider_id=str(rider_id),
                new_status=new_status.value,
            )

        updated = result.rowcount > 0
        logger.debug(
            "Rider status write",
            rider_id=str(rider_id),
            new_status=new_status.value,
            expected_status=expected_status.value if expected_status else None,
            updated=updated,
        )
        return updated
