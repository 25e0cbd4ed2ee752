"""Serve a test bundle's virtual asset paths from an in-memory manifest.

The page requests assets from ``proxy_url``. Those requests never reach a real
server: the tab intercepts them and either answers with a synthesized HTTP
response or redirects them to the storage location named by the manifest.
"""

from __future__ import annotations

import base64
import re
from dataclasses import dataclass, field
from email.utils import formatdate
from typing import Any, Union
from urllib.parse import quote, unquote, urlsplit

INDEX_PATTERN = re.compile(r"^index\.html")

# Characters encodeURIComponent leaves alone, beyond quote()'s defaults
URI_COMPONENT_SAFE = "!~*'()"


@dataclass(frozen=True)
class Manifest:
    """Where a bundle's files live and what its index document is."""

    proxy_url: str
    index: str
    files: dict[str, str] = field(default_factory=dict)
    storage_base_url: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Manifest:
        """Build from the JSON manifest shape (camelCase keys).

        ``s3Url`` is accepted as an older name for ``storageBaseUrl``.
        """
        return cls(
            proxy_url=data["proxyUrl"],
            index=data.get("index", ""),
            files=dict(data.get("files") or {}),
            storage_base_url=data.get("storageBaseUrl") or data.get("s3Url", ""),
        )

    def lookup(self, path: str) -> str | None:
        """Return the storage key for ``path``, with or without a leading slash."""
        if path in self.files:
            return self.files[path]
        alternate = path[1:] if path.startswith("/") else f"/{path}"
        return self.files.get(alternate)


# ── Decisions ───────────────────────────────────────────────────


@dataclass(frozen=True)
class Passthrough:
    """Let the request continue untouched."""


@dataclass(frozen=True)
class Respond:
    """Answer the request with a synthesized response."""

    status: str
    body: str = ""
    content_type: str = "text/plain"


@dataclass(frozen=True)
class Redirect:
    """Send the request to a different URL."""

    url: str


Decision = Union[Passthrough, Respond, Redirect]

PASSTHROUGH = Passthrough()


def request_path(manifest: Manifest, url: str) -> str | None:
    """Decode the part of ``url`` below the manifest's proxy base.

    Returns ``None`` when the URL does not target the proxy.
    """
    base = manifest.proxy_url.rstrip("/")
    if not base or not url.startswith(base):
        return None
    rest = url[len(base):]
    if rest and rest[0] not in "/?#":
        # Shares a prefix with the proxy (e.g. /bundle vs /bundle2) but is a different path
        return None
    return unquote(urlsplit(rest).path)


def resolve_request(manifest: Manifest | None, url: str) -> Decision:
    """Decide how an intercepted request for ``url`` should be handled."""
    if manifest is None:
        return PASSTHROUGH
    path = request_path(manifest, url)
    if path is None:
        return PASSTHROUGH

    if INDEX_PATTERN.match(path.lstrip("/")):
        return Respond("200 OK", manifest.index, "text/html")

    key = manifest.lookup(path)
    if key is None:
        return Respond("404 Not Found")
    base = manifest.storage_base_url.rstrip("/")
    return Redirect(f"{base}/{quote(key, safe=URI_COMPONENT_SAFE)}")


def make_raw_response(
    status: str, body: str = "", content_type: str = "text/plain"
) -> bytes:
    """Build a literal HTTP/1.1 response."""
    payload = body.encode("utf-8")
    head = (
        f"HTTP/1.1 {status}\r\n"
        f"Date: {formatdate(usegmt=True)}\r\n"
        f"Content-Type: {content_type}\r\n"
        f"Content-Length: {len(payload)}\r\n"
        "\r\n"
    )
    return head.encode("latin-1") + payload


def make_base64_response(
    status: str, body: str = "", content_type: str = "text/plain"
) -> str:
    """Build a raw HTTP response, base64-encoded for the interception API."""
    raw = make_raw_response(status, body, content_type)
    return base64.b64encode(raw).decode("ascii")
