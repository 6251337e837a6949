from __future__ import annotations

import re
import secrets
import uuid
from email.utils import parseaddr
from pathlib import Path
from typing import Optional

from .errors import UnauthorizedError


_UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}$")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._ -]+")
_EMAIL_RE = re.compile(r"^[^@\s,;<>]+@[^@\s,;<>]+\.[^@\s,;<>]+$")


def normalize_identifier(value: str) -> str:
    """Validate and normalize a document or link id.

    Treat ids as capability tokens; keep them unguessable and validate
    them strictly to reduce accidental path tricks.
    """
    if not isinstance(value, str):
        raise ValueError("Invalid identifier")
    value = value.strip()
    if not _UUID_RE.match(value):
        # uuid.UUID also accepts many formats; we want strict canonical UUID strings.
        raise ValueError("Invalid identifier")
    return str(uuid.UUID(value))


def new_identifier() -> str:
    return str(uuid.uuid4())


def is_safe_basename(name: str) -> bool:
    """Allow only simple filenames (no directories)."""
    if not isinstance(name, str) or not name:
        return False
    if name != Path(name).name:
        return False
    if "/" in name or "\\" in name:
        return False
    return True


def sanitize_filename(name: Optional[str], fallback: str) -> str:
    """Turn a caller-supplied document name into a safe ``*.pdf`` basename."""
    raw = (name or "").strip().replace("/", "_").replace("\\", "_")
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", raw).strip(" .")
    if not cleaned or not is_safe_basename(cleaned):
        return fallback
    if not cleaned.lower().endswith(".pdf"):
        cleaned = f"{cleaned}.pdf"
    return cleaned[:200]


def is_plain_email_address(value: str) -> bool:
    """One bare ``local@domain`` address; no display name, no header folding."""
    if not isinstance(value, str) or any(c in value for c in "\r\n"):
        return False
    name, addr = parseaddr(value)
    return not name and addr == value.strip() and _EMAIL_RE.match(addr) is not None


def safe_join(base_dir: Path, *parts: str) -> Path:
    """Join paths and ensure the result stays within base_dir.

    This defends against path traversal when serving user-controlled paths.
    """
    base_dir = base_dir.resolve()
    candidate = base_dir
    for part in parts:
        candidate = candidate / part
    resolved = candidate.resolve()
    if resolved == base_dir:
        return resolved
    if base_dir not in resolved.parents:
        raise ValueError("Path traversal attempt")
    return resolved


def check_bearer_token(authorization: Optional[str], api_key: Optional[str]) -> None:
    """Require ``Authorization: Bearer <api_key>`` when an API key is configured."""
    if not api_key:
        return
    scheme, _, token = (authorization or "").partition(" ")
    if scheme != "Bearer" or not token:
        raise UnauthorizedError("Unauthorized")
    if not secrets.compare_digest(token.strip().encode("utf-8"), api_key.encode("utf-8")):
        raise UnauthorizedError("Unauthorized")
