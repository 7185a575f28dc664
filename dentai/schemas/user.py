from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class UserRole(str, Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"


class User(BaseModel):
    id: str
    role: UserRole
    name: str
    email: str
    password_hash: str
    registered_at: datetime
    last_login_at: datetime | None = None


class CurrentUser(BaseModel):
    """Already-resolved identity attached to the records a caller creates."""

    id: str
    name: str
    role: UserRole = UserRole.PATIENT
