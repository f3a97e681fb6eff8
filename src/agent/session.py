import secrets
import string
import time
from typing import MutableMapping

SESSION_STORAGE_KEY = "cms_session_id"

_BASE36 = string.digits + string.ascii_lowercase


def new_session_id() -> str:
    """Millisecond timestamp plus nine random base36 characters."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{int(time.time() * 1000)}-{suffix}"


def get_session_id(storage: MutableMapping[str, str]) -> str:
    """
    Session id for this browsing context, created on first use.
    The storage is tab-scoped: it survives reloads, not the tab.
    """
    session_id = storage.get(SESSION_STORAGE_KEY)
    if not session_id:
        session_id = new_session_id()
        storage[SESSION_STORAGE_KEY] = session_id
    return session_id
