"""
Async client for the FastLink auth API.

Construct a SessionCoordinator per app and pass it where it is needed.
"""

from .coordinator import SessionCoordinator
from .errors import ApiError, ClientError, SessionExpiredError, TransientError
from .single_flight import SingleFlight
from .state import CachedUser, FlowType, PersistedSession, SessionState
from .storage import FileSessionStorage, MemorySessionStorage, SessionStorage

__all__ = [
    "ApiError",
    "CachedUser",
    "ClientError",
    "FileSessionStorage",
    "FlowType",
    "MemorySessionStorage",
    "PersistedSession",
    "SessionCoordinator",
    "SessionExpiredError",
    "SessionState",
    "SessionStorage",
    "SingleFlight",
    "TransientError",
]
