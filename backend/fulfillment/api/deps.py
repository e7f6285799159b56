"""
FastAPI dependencies for authentication, authorization and services.

This module resolves the caller from the bearer token and the profiles
table, provides role guards, and builds the fulfillment services on the
request's database session.
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.config import Settings, get_settings
from fulfillment.core.logging import get_logger, set_user_id
from fulfillment.core.permissions import Identity, UserRole, has_any_role
from fulfillment.core.security import TokenError, decode_token, get_token_user_id
from fulfillment.database.connection import get_db
from fulfillment.database.models.user import Profile
from fulfillment.services.deliveries.service import DeliveryAssignmentManager
from fulfillment.services.invoices.synthesizer import InvoiceSynthesizer
from fulfillment.services.orders.service import OrderStatusController

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)

DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]


async def get_current_identity(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: DatabaseSession,
) -> Identity:
    """
    Validate the bearer token and resolve the caller's role.

    Callers without a profile row are treated as customers.

    Args:
        credentials: HTTP Bearer token from Authorization header
        db: Database session

    Returns:
        Identity: Authenticated caller

    Raises:
        HTTPException: 401 if the token is missing or invalid, 500 if the
            profile lookup fails
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        logger.warning("Authentication failed: No credentials provided")
        raise credentials_exception

    try:
        payload = decode_token(credentials.credentials)
        user_id = get_token_user_id(payload)
    except TokenError as e:
        logger.warning(
            "Authentication failed",
            code=e.code,
            error=str(e),
        )
        raise credentials_exception from e

    try:
        profile = await db.get(Profile, user_id)
    except SQLAlchemyError as e:
        logger.error(
            "Database error during profile retrieval",
            user_id=str(user_id),
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from e

    email = payload.get("email") or (profile.email if profile else None)
    role = profile.role if profile else UserRole.CUSTOMER

    set_user_id(str(user_id))
    logger.debug(
        "Caller authenticated",
        user_id=str(user_id),
        role=role.value,
        has_profile=profile is not None,
    )
    return Identity(user_id=user_id, email=email, role=role)


CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]


def require_role(*allowed_roles: UserRole):
    """
    Create a dependency that requires specific user roles.

    Privileged callers (admin role or a configured administrator email)
    always pass.

    Args:
        *allowed_roles: Roles that are allowed

    Returns:
        Callable: Dependency function returning the validated identity

    Example:
        @router.post("/", dependencies=[Depends(require_role(UserRole.ADMIN))])
        async def admin_endpoint():
            ...
    """

    async def role_checker(
        identity: CurrentIdentity,
        settings: AppSettings,
    ) -> Identity:
        if not has_any_role(identity, allowed_roles, settings):
            logger.warning(
                "Access denied: Insufficient permissions",
                user_id=str(identity.user_id),
                user_role=identity.role.value,
                required_roles=[role.value for role in allowed_roles],
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return identity

    return role_checker


def get_order_controller(
    db: DatabaseSession,
    settings: AppSettings,
) -> OrderStatusController:
    return OrderStatusController(db, settings)


def get_delivery_manager(
    db: DatabaseSession,
    settings: AppSettings,
) -> DeliveryAssignmentManager:
    return DeliveryAssignmentManager(db, settings)


def get_invoice_synthesizer(
    db: DatabaseSession,
    settings: AppSettings,
) -> InvoiceSynthesizer:
    return InvoiceSynthesizer(db, settings)


OrderController = Annotated[OrderStatusController, Depends(get_order_controller)]
DeliveryManager = Annotated[DeliveryAssignmentManager, Depends(get_delivery_manager)]
Invoices = Annotated[InvoiceSynthesizer, Depends(get_invoice_synthesizer)]
