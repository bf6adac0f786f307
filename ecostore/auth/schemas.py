from pydantic import EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime

from ecostore.shared.utils import CamelModel
from ecostore.shared.security_config import validate_password_strength, sanitize_input

class UserRegister(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    name: str = Field(..., min_length=1, max_length=120)
    # Accepted for client compatibility; signup always creates a plain user
    role: Optional[str] = None

    @field_validator('email')
    def normalize_email(cls, v):
        return v.lower()

    @field_validator('password')
    def password_complexity(cls, v):
        if not validate_password_strength(v):
            raise ValueError('Password must be at least 8 characters long and contain uppercase, lowercase, and numbers')
        return v

    @field_validator('name', 'role')
    def sanitize_fields(cls, v):
        return sanitize_input(v)

class UserLogin(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator('email')
    def normalize_email(cls, v):
        return v.lower()

class RoleUpdate(CamelModel):
    role: str = Field(..., pattern="^(user|admin)$")

class UserResponse(CamelModel):
    id: int
    email: EmailStr
    name: str
    role: str
    green_points: int
    total_co2_saved: float = Field(alias="totalCO2Saved")
    total_plastic_saved: float
    created_at: datetime

class AuthResponse(CamelModel):
    user: UserResponse
    token: str
