"""
Local persistence for the client session snapshot.

MemorySessionStorage — process lifetime only (tests, short-lived scripts)
FileSessionStorage   — one JSON file, read and written off the event loop
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Protocol, Union

from pydantic import ValidationError

from session_client.state import PersistedSession
from shared.logging import get_logger

log = get_logger(__name__)


class SessionStorage(Protocol):
    async def load(self) -> Optional[PersistedSession]: ...

    async def save(self, session: PersistedSession) -> None: ...

    async def clear(self) -> None: ...


class MemorySessionStorage:
    def __init__(self, initial: Optional[PersistedSession] = None) -> None:
        self._blob: Optional[str] = initial.model_dump_json() if initial else None

    async def load(self) -> Optional[PersistedSession]:
        if self._blob is None:
            return None
        return PersistedSession.model_validate_json(self._blob)

    async def save(self, session: PersistedSession) -> None:
        self._blob = session.model_dump_json()

    async def clear(self) -> None:
        self._blob = None


class FileSessionStorage:
    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)

    async def load(self) -> Optional[PersistedSession]:
        if not await asyncio.to_thread(self._path.exists):
            return None
        raw = await asyncio.to_thread(self._path.read_text, encoding="utf-8")
        try:
            return PersistedSession.model_validate_json(raw)
        except ValidationError as e:
            # Unreadable snapshot: start clean rather than fail hydration
            log.warning("session_snapshot_invalid", path=str(self._path), error=str(e))
            return None

    async def save(self, session: PersistedSession) -> None:
        await asyncio.to_thread(self._write, session.model_dump_json())

    async def clear(self) -> None:
        await asyncio.to_thread(self._path.unlink, missing_ok=True)

    def _write(self, payload: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(payload, encoding="utf-8")
        tmp.replace(self._path)
