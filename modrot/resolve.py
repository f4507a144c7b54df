"""Resolution of vanity import paths to GitHub repositories."""

from __future__ import annotations

import re

import httpx
import structlog

from .identity import extract_identity_from_url
from .models import EMPTY_IDENTITY, RepoIdentity
from .proxy import DEFAULT_TIMEOUT, ProxyClient

log = structlog.get_logger("modrot.resolve")

_META_RE = re.compile(r"<meta\s+([^>]*)>", re.IGNORECASE)
_ATTR_RE = re.compile(
    r"""(name|content)\s*=\s*(?:"([^"]*)"|'([^']*)')""", re.IGNORECASE
)


def parse_meta_tags(body: str) -> tuple[str, str]:
    """Return the content of the first go-import and go-source meta tags.

    Attribute order inside the tag does not matter.
    """
    go_import = ""
    go_source = ""
    for match in _META_RE.finditer(body):
        name = ""
        content = ""
        for attr in _ATTR_RE.finditer(match.group(1)):
            value = attr.group(2) if attr.group(2) is not None else attr.group(3)
            if attr.group(1).lower() == "name":
                name = value
            else:
                content = value
        if name == "go-import" and not go_import:
            go_import = content
        elif name == "go-source" and not go_source:
            go_source = content
    return go_import, go_source


def identity_from_meta(go_import: str, go_source: str) -> RepoIdentity:
    """Pick a GitHub repository out of go-import / go-source declarations.

    go-import is ``prefix vcs repo-url``; its repo URL wins when it points at
    GitHub. Otherwise every field of go-source (``prefix home dir file``) is
    tried, which covers vanity hosts whose go-import points back at
    themselves.
    """
    fields = go_import.split()
    if len(fields) >= 3:
        identity = extract_identity_from_url(fields[2])
        if identity:
            return identity

    for part in go_source.split():
        identity = extract_identity_from_url(part)
        if identity:
            return identity

    return EMPTY_IDENTITY


class VanityResolver:
    """Resolves non-GitHub module paths to their GitHub repository.

    Tries the module proxy's Origin metadata first and falls back to the
    ``?go-get=1`` meta tags served by the vanity host. A module without a
    GitHub mirror resolves to an empty identity.
    """

    def __init__(
        self,
        proxy: ProxyClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._owns_proxy = proxy is None
        self.proxy = proxy or ProxyClient(timeout=timeout, transport=transport)
        self._client = httpx.AsyncClient(
            timeout=timeout, transport=transport, follow_redirects=True
        )

    async def close(self) -> None:
        await self._client.aclose()
        if self._owns_proxy:
            await self.proxy.close()

    async def __aenter__(self) -> VanityResolver:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def resolve_one(self, module_path: str) -> RepoIdentity:
        """Resolve one module path, proxy first, then meta tags."""
        identity = await self.resolve_via_proxy(module_path)
        if identity:
            log.debug("resolve.proxy_hit", module=module_path, repo=identity.key)
            return identity

        identity = await self.resolve_via_meta(module_path)
        if identity:
            log.debug("resolve.meta_hit", module=module_path, repo=identity.key)
        return identity

    async def resolve_via_proxy(self, module_path: str) -> RepoIdentity:
        latest = await self.proxy.fetch_latest(module_path)
        return extract_identity_from_url(latest.origin_url)

    async def resolve_via_meta(self, module_path: str) -> RepoIdentity:
        url = f"https://{module_path}?go-get=1"
        try:
            response = await self._client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            log.debug("resolve.meta_failed", url=url, error=str(e))
            return EMPTY_IDENTITY

        if response.status_code != 200:
            log.debug("resolve.meta_bad_status", url=url, status=response.status_code)
            return EMPTY_IDENTITY

        go_import, go_source = parse_meta_tags(response.text)
        return identity_from_meta(go_import, go_source)
