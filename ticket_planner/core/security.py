from __future__ import annotations

import re
from pathlib import Path
from urllib.parse import urlparse

from ticket_planner.core.errors import ValidationError


SPREADSHEET_SUFFIXES: set[str] = {".xlsx", ".xlsm", ".xls"}

_API_KEY_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_-]{1,100}$")

# Applied in order; each pattern's value part is replaced wholesale.
_SECRET_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"api[_-]?key[:=\s]*[A-Za-z0-9_-]+", re.IGNORECASE), "api_key: [MASKED]"),
    (re.compile(r"password[:=\s]*\S+", re.IGNORECASE), "password: [MASKED]"),
    (re.compile(r"token[:=\s]*[A-Za-z0-9_-]+", re.IGNORECASE), "token: [MASKED]"),
    (re.compile(r"authorization[:=\s]*\S+", re.IGNORECASE), "authorization: [MASKED]"),
]
_DEEP_PATH_RE = re.compile(r"(?:/[^/\s]+){3,}")


def sanitize_message(message: object) -> str:
    """Strip secrets and long filesystem paths from text meant for display."""
    text = str(message) if message is not None else ""
    if not text:
        return "unknown error"
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return _DEEP_PATH_RE.sub("/***/***/***", text)


def mask_secret(value: str, show: int = 4) -> str:
    if not value or len(value) <= show * 2:
        return "*" * 8
    middle = "*" * max(4, len(value) - show * 2)
    return f"{value[:show]}{middle}{value[-show:]}"


def validate_url(url: str) -> str:
    """Return the URL without a trailing slash."""
    if not url or not url.strip():
        raise ValidationError(code="E_REQUIRED_FIELD", message="Redmine URL is required", path="url")
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(
            code="E_INVALID_URL",
            message="Redmine URL must be an http(s) URL with a host",
            path="url",
        )
    try:
        port = parsed.port
    except ValueError as e:
        raise ValidationError(code="E_INVALID_URL", message="invalid port number", path="url") from e
    if port is not None and not 1 <= port <= 65535:
        raise ValidationError(code="E_INVALID_URL", message="invalid port number", path="url")
    return url.strip().rstrip("/")


def validate_api_key(api_key: str) -> str:
    key = (api_key or "").strip()
    if not key:
        raise ValidationError(code="E_REQUIRED_FIELD", message="API key is required", path="api_key")
    if not 16 <= len(key) <= 128:
        raise ValidationError(
            code="E_INVALID_API_KEY",
            message="API key must be between 16 and 128 characters",
            path="api_key",
        )
    if not _API_KEY_RE.match(key):
        raise ValidationError(
            code="E_INVALID_API_KEY",
            message="API key may only contain letters, digits, '-' and '_'",
            path="api_key",
        )
    return key


def validate_project_id(project_id: str) -> str:
    pid = (project_id or "").strip()
    if not pid:
        raise ValidationError(code="E_REQUIRED_FIELD", message="project id is required", path="project")
    if pid.isdigit():
        if not 1 <= int(pid) <= 999999:
            raise ValidationError(
                code="E_INVALID_PROJECT", message="numeric project id out of range", path="project"
            )
    elif not _IDENTIFIER_RE.match(pid):
        raise ValidationError(
            code="E_INVALID_PROJECT",
            message="project identifier may only contain letters, digits, '-' and '_'",
            path="project",
        )
    return pid


def validate_source_path(path: str) -> Path:
    if not path or not path.strip():
        raise ValidationError(code="E_REQUIRED_FIELD", message="file path is required", path="source")
    p = Path(path)
    if ".." in p.parts:
        raise ValidationError(
            code="E_INVALID_PATH", message="parent directory references are not allowed", file=path
        )
    if p.is_symlink():
        raise ValidationError(code="E_INVALID_PATH", message="symbolic links are not allowed", file=path)
    if not p.exists():
        raise ValidationError(code="E_FILE_NOT_FOUND", message="file does not exist", file=path)
    if not p.is_file():
        raise ValidationError(code="E_INVALID_PATH", message="path is not a regular file", file=path)
    if p.suffix.lower() not in SPREADSHEET_SUFFIXES:
        raise ValidationError(
            code="E_UNSUPPORTED_FORMAT",
            message=f"supported formats are {', '.join(sorted(SPREADSHEET_SUFFIXES))}",
            file=path,
        )
    return p
