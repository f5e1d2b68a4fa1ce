"""Application dependencies for dependency injection."""
from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from manifest_guard.core.database import get_db
from manifest_guard.core.enums import UserRole
from manifest_guard.core.invoicing import InvoicingClientFactory, get_invoicing_client_factory
from manifest_guard.core.security import decode_token, TokenPayload
from manifest_guard.core.logging import get_logger
from manifest_guard.models.user import User


security = HTTPBearer()
logger = get_logger(__name__)


async def get_current_token(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """Validate and decode the JWT token from the Authorization header."""
    payload = decode_token(credentials.credentials)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.type != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type. Access token required.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload


async def get_current_user(
    token: TokenPayload = Depends(get_current_token),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get the current authenticated user with JIT provisioning."""
    result = await db.execute(select(User).where(User.id == token.sub))
    user = result.scalar_one_or_none()

    if user is None:
        target_role = UserRole.OPERATOR
        if token.role:
            try:
                target_role = UserRole(token.role.upper())
            except ValueError:
                logger.warning(f"Unknown role in token: {token.role}, defaulting to OPERATOR")

        user = User(
            id=token.sub,
            email=token.email or token.user_metadata.get("email") or "unknown@manifest-guard.local",
            full_name=token.user_metadata.get("full_name"),
            role=target_role,
            is_active=True,
        )
        db.add(user)
        await db.commit()
        logger.info(f"JIT Provisioned user: {user.id} ({target_role.value})", extra={"user_id": user.id})

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is inactive",
        )

    return user


# Type aliases for cleaner dependency injection
CurrentToken = Annotated[TokenPayload, Depends(get_current_token)]
CurrentUser = Annotated[User, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
InvoicingFactory = Annotated[InvoicingClientFactory, Depends(get_invoicing_client_factory)]


def require_role(*roles: UserRole):
    """Dependency factory to require specific roles."""
    async def role_checker(user: CurrentUser) -> User:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{user.role.value}' not authorized. Required: {[r.value for r in roles]}",
            )
        return user
    return role_checker


Supervisor = Annotated[User, Depends(require_role(UserRole.ADMIN, UserRole.MANAGER))]
