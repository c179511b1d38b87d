"""
Anonymous session identity.

A session id scopes one device's cart, orders and chat. Format:

    session_<epoch milliseconds>_<uuid4>

Ids of the older ``session_<digits>_<alphanumeric>`` form are still accepted.

``SessionIdentity`` is the client-side holder used by the kiosk: the id is
created lazily on first access, kept for the life of the process, and saved
in a store private to one device profile (a "tab"), so a restart of the same
profile keeps its id while a new profile gets a new one. Only ``clear()``
drops it.
"""

import logging
import re
import threading
import time
import uuid
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


SESSION_ID_MIN_LENGTH = 10
SESSION_ID_MAX_LENGTH = 150

_UUID_PATTERN = re.compile(
    r"^session_\d+_[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_LEGACY_PATTERN = re.compile(r"^session_\d+_[a-z0-9]+$", re.IGNORECASE)

DEFAULT_STORE_DIR = Path.home() / ".resto_bot" / "sessions"


def generate_session_id() -> str:
    return f"session_{int(time.time() * 1000)}_{uuid.uuid4()}"


def is_valid_session_id(value: Optional[str]) -> bool:
    if not value or not (SESSION_ID_MIN_LENGTH <= len(value) <= SESSION_ID_MAX_LENGTH):
        return False
    return bool(_UUID_PATTERN.match(value) or _LEGACY_PATTERN.match(value))


class SessionIdentity:
    """
    Lazily created, process-lifetime session id for one device profile.

    Args:
        profile: Name of the device profile ("tab"); each has its own id
        store_dir: Directory holding one file per profile; None keeps the id
            in memory only
    """

    def __init__(self, profile: str = "default", store_dir: Optional[Path] = DEFAULT_STORE_DIR):
        self.profile = profile
        self._store_path = Path(store_dir) / f"{profile}.session" if store_dir else None
        self._cached: Optional[str] = None
        self._lock = threading.Lock()

    def get(self) -> str:
        if self._cached:
            return self._cached

        with self._lock:
            if self._cached:
                return self._cached

            session_id = self._read_store()
            if not session_id:
                session_id = generate_session_id()
                self._write_store(session_id)
                logger.info("New session %s for profile '%s'", session_id[:20], self.profile)

            self._cached = session_id
            return session_id

    def clear(self) -> None:
        with self._lock:
            self._cached = None
            if self._store_path and self._store_path.exists():
                self._store_path.unlink()

    def _read_store(self) -> Optional[str]:
        if not self._store_path or not self._store_path.exists():
            return None
        value = self._store_path.read_text(encoding="utf-8").strip()
        if not is_valid_session_id(value):
            logger.warning("Ignoring invalid stored session id for profile '%s'", self.profile)
            return None
        return value

    def _write_store(self, session_id: str) -> None:
        if not self._store_path:
            return
        self._store_path.parent.mkdir(parents=True, exist_ok=True)
        self._store_path.write_text(session_id, encoding="utf-8")


_identity: Optional[SessionIdentity] = None
_identity_lock = threading.Lock()


def get_session_identity(profile: str = "default", store_dir: Optional[Path] = DEFAULT_STORE_DIR) -> SessionIdentity:
    """Return the process-wide SessionIdentity, creating it on first call."""
    global _identity
    with _identity_lock:
        if _identity is None:
            _identity = SessionIdentity(profile=profile, store_dir=store_dir)
        return _identity


def reset_session_identity() -> None:
    """Forget the process-wide instance without touching its store (tests)."""
    global _identity
    with _identity_lock:
        _identity = None
