"""Upload key conventions.

Every user upload lives under uploads/{user_id}/ so that ownership can be
checked from the key alone:

    uploads/{user_id}/{epoch_ms}-{file_name}

Rules:
    - No leading slash
    - File names are reduced to their final path component and to a safe
      character set before they become part of a key
"""

import re
import time
from uuid import UUID

UPLOADS_ROOT = "uploads"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def user_upload_prefix(user_id: UUID) -> str:
    return f"{UPLOADS_ROOT}/{user_id}/"


def sanitize_file_name(file_name: str) -> str:
    """Strip directories and collapse unsafe characters to '_'.

    Raises:
        ValueError: If nothing usable remains.
    """
    base = file_name.replace("\\", "/").rsplit("/", 1)[-1]
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    if not cleaned:
        raise ValueError(f"Unusable file name: {file_name!r}")
    return cleaned[:200]


def build_upload_key(user_id: UUID, file_name: str, now_ms: int | None = None) -> str:
    """Build the storage key for a new upload by user_id."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{user_upload_prefix(user_id)}{now_ms}-{sanitize_file_name(file_name)}"


def is_owned_upload_key(user_id: UUID, key: str) -> bool:
    """True if key sits under the user's upload prefix.

    Keys containing '..' segments are never considered owned.
    """
    if ".." in key.split("/"):
        return False
    return key.startswith(user_upload_prefix(user_id))
