"""Async client for the Go module proxy protocol."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime

import httpx
import structlog

log = structlog.get_logger("modrot.proxy")

DEFAULT_PROXY_URL = "https://proxy.golang.org"
DEFAULT_TIMEOUT = 10.0

_DEPRECATED = "Deprecated:"


@dataclass
class LatestInfo:
    """Response of ``{module}/@latest``."""

    version: str = ""
    origin_url: str = ""


def escape_path(path: str) -> str:
    """Case-encode a module path for use in proxy URLs.

    Upper-case letters become ``!`` followed by the lower-case letter, so
    ``github.com/Azure/go`` is fetched as ``github.com/!azure/go``.
    """
    if not path or "!" in path or any(c.isspace() for c in path):
        raise ValueError(f"invalid module path: {path!r}")
    out = []
    for c in path:
        if "A" <= c <= "Z":
            out.append("!" + c.lower())
        else:
            out.append(c)
    return "".join(out)


def parse_timestamp(value: object) -> datetime | None:
    """Parse an RFC 3339 timestamp, returning None when absent or invalid."""
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_deprecation(gomod: str) -> str:
    """Extract the deprecation message from a go.mod body.

    The message comes from a ``// Deprecated:`` comment (case-sensitive)
    either inline on the module directive or on the line directly above it.
    Returns an empty string when the module is not deprecated.
    """
    prev_comment = ""

    for raw in gomod.splitlines():
        line = raw.strip()

        if line.startswith("//"):
            comment = line[2:].strip()
            if comment.startswith(_DEPRECATED):
                prev_comment = comment[len(_DEPRECATED) :].strip()
            else:
                prev_comment = ""
            continue

        if line.startswith("module ") or line == "module":
            idx = line.find("// " + _DEPRECATED)
            if idx >= 0:
                return line[idx + len("// " + _DEPRECATED) :].strip()
            return prev_comment

        prev_comment = ""

    return ""


class ProxyClient:
    """Thin async wrapper around a Go module proxy.

    Every fetch is best effort: network errors, non-200 responses and
    malformed payloads produce empty results instead of exceptions.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (
            base_url or os.environ.get("MODROT_PROXY_URL") or DEFAULT_PROXY_URL
        ).rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ProxyClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def _get(self, module_path: str, suffix: str) -> httpx.Response | None:
        try:
            escaped = escape_path(module_path)
        except ValueError:
            return None

        url = f"{self.base_url}/{escaped}/{suffix}"
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            log.debug("proxy.fetch_failed", url=url, error=str(e))
            return None

        if response.status_code != 200:
            log.debug("proxy.bad_status", url=url, status=response.status_code)
            return None
        return response

    async def _get_json(self, module_path: str, suffix: str) -> dict | None:
        response = await self._get(module_path, suffix)
        if response is None:
            return None
        try:
            data = response.json()
        except ValueError:
            log.debug("proxy.malformed", module=module_path, suffix=suffix)
            return None
        return data if isinstance(data, dict) else None

    async def fetch_latest(self, module_path: str) -> LatestInfo:
        """Fetch the latest version and VCS origin URL of a module."""
        data = await self._get_json(module_path, "@latest")
        if data is None:
            return LatestInfo()

        origin = data.get("Origin")
        origin_url = ""
        if isinstance(origin, dict):
            url = origin.get("URL")
            if isinstance(url, str):
                origin_url = url
        version = data.get("Version")
        return LatestInfo(version=version if isinstance(version, str) else "", origin_url=origin_url)

    async def fetch_version_time(self, module_path: str, version: str) -> datetime | None:
        """Fetch the publish time of one module version."""
        data = await self._get_json(module_path, f"@v/{version}.info")
        if data is None:
            return None
        return parse_timestamp(data.get("Time"))

    async def fetch_deprecation(self, module_path: str, version: str) -> str:
        """Fetch a version's go.mod and return its deprecation message, if any."""
        response = await self._get(module_path, f"@v/{version}.mod")
        if response is None:
            return ""
        return parse_deprecation(response.text)
