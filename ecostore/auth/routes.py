from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from ecostore.shared.database import get_session
from ecostore.shared.utils import (
    get_password_hash, verify_password, create_access_token, require_admin,
    SuccessResponse, AppException, NotFoundException, UnauthorizedException
)
from ecostore.shared.security_config import limiter, LOGIN_LIMIT, REGISTER_LIMIT

from ecostore.auth.models import User
from ecostore.auth.schemas import (
    UserRegister, UserLogin, RoleUpdate, UserResponse, AuthResponse
)

logger = logging.getLogger("ecostore.auth")
audit = logging.getLogger("audit")

router = APIRouter(prefix="/auth", tags=["auth"])

def issue_token(user: User) -> str:
    return create_access_token(data={"sub": str(user.id), "role": user.role})

async def find_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    return await session.scalar(select(User).where(User.email == email.lower()))

async def bootstrap_admin(session: AsyncSession, email: str, password: str, name: str) -> Optional[User]:
    """Create (or promote) the first administrator. No-op once any admin exists."""
    existing_admin = await session.scalar(select(User).where(User.role == "admin").limit(1))
    if existing_admin:
        logger.info("Admin already exists, bootstrap skipped")
        return None

    user = await find_user_by_email(session, email)
    if user:
        user.role = "admin"
    else:
        user = User(email=email.lower(), password_hash=get_password_hash(password), name=name, role="admin")
        session.add(user)
    await session.commit()

    audit.info("admin_bootstrapped", extra={"user_id": user.id})
    return user

# --- Endpoints ---

@router.post("/register", response_model=SuccessResponse[AuthResponse], status_code=status.HTTP_201_CREATED)
@limiter.limit(REGISTER_LIMIT)
async def register(request: Request, user: UserRegister, session: AsyncSession = Depends(get_session)):
    if await find_user_by_email(session, user.email):
        raise AppException(detail="User already exists")

    if user.role and user.role != "user":
        # Roles are granted by an admin, never self-assigned
        audit.warning("admin_role_request_ignored", extra={"role": user.role})

    user_db = User(
        email=user.email,
        password_hash=get_password_hash(user.password),
        name=user.name,
        role="user"
    )
    session.add(user_db)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise AppException(detail="User already exists")

    audit.info("user_registered", extra={"user_id": user_db.id})
    return SuccessResponse(
        data=AuthResponse(user=UserResponse.model_validate(user_db), token=issue_token(user_db)),
        message="User registered successfully"
    )

@router.post("/login", response_model=SuccessResponse[AuthResponse])
@limiter.limit(LOGIN_LIMIT)
async def login(request: Request, user_credentials: UserLogin, session: AsyncSession = Depends(get_session)):
    user = await find_user_by_email(session, user_credentials.email)
    if not user or not verify_password(user_credentials.password, user.password_hash):
        raise UnauthorizedException("Invalid credentials")

    return SuccessResponse(data=AuthResponse(user=UserResponse.model_validate(user), token=issue_token(user)))

@router.put("/users/{user_id}/role", response_model=SuccessResponse[UserResponse])
async def grant_role(
    user_id: int,
    role_update: RoleUpdate,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    user = await session.get(User, user_id)
    if not user:
        raise NotFoundException("User not found")

    previous = user.role
    user.role = role_update.role
    await session.commit()

    audit.info(
        "role_granted %s -> %s by %s", previous, user.role, admin["sub"],
        extra={"user_id": user.id, "role": user.role}
    )
    return SuccessResponse(data=UserResponse.model_validate(user), message="Role updated")
