from datetime import datetime, timedelta
from typing import Optional, Generic, TypeVar
from fastapi import HTTPException, status, Header, Depends, Request
from passlib.context import CryptContext
from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings
from jose import JWTError, jwt
import uuid

# --- Configuration ---
class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./ecostore.db"
    SECRET_KEY: str = "secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    LOG_LEVEL: str = "INFO"
    RATE_LIMIT_ENABLED: bool = True
    CORS_ORIGINS: str = "*"
    LEADERBOARD_SIZE: int = 10
    ECO_POINTS_PER_ITEM: int = 10
    # Order status that credits the points ledger; empty disables crediting
    POINTS_CREDIT_STATUS: str = "delivered"

    class Config:
        env_file = ".env"

settings = Settings()

# --- Authentication ---
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    if "jti" not in to_encode:
        to_encode.update({"jti": str(uuid.uuid4())})

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt

def verify_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise UnauthorizedException("Could not validate credentials")
    if "sub" not in payload or "role" not in payload:
        raise UnauthorizedException("Could not validate credentials")
    return payload

# --- Response Models ---
T = TypeVar("T")

class CamelModel(BaseModel):
    """Base for API payloads: camelCase on the wire, snake_case in Python."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True

class SuccessResponse(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None

class ErrorResponse(BaseModel):
    success: bool = False
    error: str

class HealthResponse(BaseModel):
    service: str
    status: str
    timestamp: datetime
    version: str
    database: Optional[str] = None


# --- Exceptions ---
class AppException(HTTPException):
    def __init__(
        self,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        detail: str = "An error occurred",
        headers: Optional[dict] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)

class NotFoundException(AppException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

class UnauthorizedException(AppException):
    def __init__(self, detail: str = "Unauthorized"):
         super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"}
        )

class ForbiddenException(AppException):
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

# --- Dependencies ---
async def get_current_user(request: Request, authorization: Optional[str] = Header(None)) -> dict:
    if not authorization:
        raise UnauthorizedException("Missing Authorization header")
    scheme, _, param = authorization.partition(" ")
    if scheme.lower() != "bearer" or not param:
         raise UnauthorizedException("Invalid authentication credentials")
    payload = verify_token(param)
    request.state.user_id = payload["sub"]
    return payload

async def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        raise ForbiddenException("Admin access required")
    return user

def current_user_id(user: dict) -> int:
    return int(user["sub"])
