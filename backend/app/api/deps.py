"""FastAPI dependency injection — session identity and snapshot store wiring."""
import re
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from app.config import SESSION_HEADER
from app.services.snapshot_store import SessionKeyValueStore, SnapshotStore

# Session ids and snapshot keys end up inside store keys (and Redis SCAN
# patterns), so glob characters and separators are not allowed.
_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{8,128}$")
SNAPSHOT_KEY_PATTERN = r"^[A-Za-z0-9_.-]{1,200}$"


def get_session_id(
    x_session_id: Optional[str] = Header(default=None, alias=SESSION_HEADER),
) -> str:
    """Opaque browsing-session id issued by the front end (one per tab session)."""
    if not x_session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{SESSION_HEADER} header required",
        )
    if not _SESSION_ID_RE.match(x_session_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {SESSION_HEADER} header",
        )
    return x_session_id


def get_store_backend(request: Request) -> SessionKeyValueStore:
    backend = getattr(request.app.state, "snapshot_backend", None)
    if backend is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Snapshot store not initialised",
        )
    return backend


def get_snapshot_store(
    session_id: str = Depends(get_session_id),
    backend: SessionKeyValueStore = Depends(get_store_backend),
) -> SnapshotStore:
    return SnapshotStore(backend, session_id)
