"""
Shared repository plumbing.

Each repository write is its own committed unit: one statement, one commit.
A failed round-trip rolls the session back and surfaces as RepositoryError
so services can apply their declared failure policy.
"""

from typing import Any, NoReturn

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.exceptions import ConstraintViolationError, RepositoryError
from fulfillment.core.logging import get_logger

logger = get_logger(__name__)


class BaseRepository:
    """Base class holding the session and the failure translation."""

    def __init__(self, session: AsyncSession):
        """
        Initialize repository.

        Args:
            session: Async database session
        """
        self.session = session

    async def _fail(
        self,
        operation: str,
        error: SQLAlchemyError,
        **context: Any,
    ) -> NoReturn:
        """
        Roll back and raise the repository error for a failed round-trip.

        Raises:
            ConstraintViolationError: On unique constraint violations
            RepositoryError: On every other database error
        """
        await self.session.rollback()
        logger.error(
            "Database operation failed",
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
            **context,
        )
        if isinstance(error, IntegrityError):
            raise ConstraintViolationError(
                f"{operation} violated a constraint",
                operation=operation,
                error=str(error),
                **context,
            ) from error
        raise RepositoryError(
            f"{operation} failed",
            operation=operation,
            error=str(error),
            **context,
        ) from error

    def detach(self, instance: Any) -> None:
        """Remove an instance from the session; later rollbacks leave it loaded."""
        if instance in self.session:
            self.session.expunge(instance)
