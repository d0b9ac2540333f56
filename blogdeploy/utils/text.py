"""Utilities for preparing subprocess output and URLs for logs."""
from __future__ import annotations

import re
from typing import Any, Iterable


_URL_CREDENTIALS_RE = re.compile(r"(?P<scheme>[a-zA-Z][a-zA-Z0-9+.-]*://)(?P<userinfo>[^/@\s]+)@")
REDACTED = "***"


def redact_credentials(value: Any, secrets: Iterable[str] = ()) -> str:
    """Mask credentials embedded in URLs and any explicitly supplied secrets.

    Remote URLs handed to ``git push`` usually look like
    ``https://<token>@github.com/owner/repo.git``. Git echoes them back in error
    messages, so everything that ends up in a log line or exception message goes
    through this helper first. Non-string inputs return an empty string.
    """

    if not isinstance(value, str):
        return ""

    text = value
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    return _URL_CREDENTIALS_RE.sub(lambda match: f"{match.group('scheme')}{REDACTED}@", text)


def url_secrets(url: str | None) -> list[str]:
    """Return the userinfo portion of ``url`` so it can be masked verbatim elsewhere."""

    if not url:
        return []
    match = _URL_CREDENTIALS_RE.search(url)
    if match is None:
        return []
    userinfo = match.group("userinfo")
    parts = [userinfo]
    # ``user:token`` forms leak the token on its own in some git messages.
    if ":" in userinfo:
        token = userinfo.split(":", 1)[1]
        if len(token) > 3:
            parts.append(token)
    return parts


def tail_lines(value: str, *, limit: int = 20) -> str:
    """Return the last ``limit`` non-empty lines of ``value``."""

    lines = [line for line in value.splitlines() if line.strip()]
    return "\n".join(lines[-limit:])


__all__ = ["REDACTED", "redact_credentials", "tail_lines", "url_secrets"]
