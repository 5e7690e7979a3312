"""Session lifecycle states and the persisted client snapshot."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    HYDRATING = "hydrating"
    VALIDATING = "validating"
    READY = "ready"  # initialization finished, signed in or not
    FAILED = "failed"  # initialization hit an unexpected error


class FlowType(str, Enum):
    LOGIN = "login"
    REGISTER = "register"
    PASSWORD_RESET = "password_reset"


class CachedUser(BaseModel):
    """Profile snapshot kept after sign-in. Holds no credential material."""

    model_config = ConfigDict(extra="ignore")

    id: str
    email: str
    name: Optional[str] = None
    is_verified: bool = False
    profile_completed: bool = False
    role: str = "user"


class PersistedSession(BaseModel):
    """The single blob written to local storage."""

    user: Optional[CachedUser] = None
    pending_email: str = ""
    flow_type: Optional[FlowType] = None
