"""Batched GitHub GraphQL queries for repository archival status."""

from __future__ import annotations

import json
import os
import subprocess
from typing import Any

import httpx
import structlog

from .errors import CredentialError, GitHubAPIError
from .models import Module, RepoStatus
from .proxy import parse_timestamp

log = structlog.get_logger("modrot.github")

DEFAULT_GRAPHQL_URL = "https://api.github.com/graphql"
DEFAULT_BATCH_SIZE = 50

NOT_FOUND_MESSAGE = "repository not found"


def get_token() -> str:
    """Return a GitHub token from GITHUB_TOKEN or `gh auth token`."""
    token = os.environ.get("GITHUB_TOKEN", "").strip()
    if token:
        return token

    try:
        proc = subprocess.run(
            ["gh", "auth", "token"], capture_output=True, text=True, check=True
        )
    except (OSError, subprocess.CalledProcessError) as e:
        raise CredentialError(
            "failed to get GitHub token (set GITHUB_TOKEN, or install and "
            f"authenticate gh): {e}"
        ) from e

    token = proc.stdout.strip()
    if not token:
        raise CredentialError("`gh auth token` returned an empty token")
    return token


def build_query(modules: list[Module]) -> str:
    """Build one GraphQL query covering every module, aliased r0, r1, ..."""
    lines = ["{"]
    for i, m in enumerate(modules):
        lines.append(
            f"  r{i}: repository(owner: {json.dumps(m.owner)}, name: {json.dumps(m.repo)}) {{"
        )
        lines.append("    isArchived")
        lines.append("    archivedAt")
        lines.append("    pushedAt")
        lines.append("  }")
    lines.append("}")
    return "\n".join(lines) + "\n"


def parse_response(payload: Any, modules: list[Module]) -> list[RepoStatus]:
    """Turn a GraphQL response into one RepoStatus per module.

    Answers are matched to modules by alias position only: module ``i`` gets
    alias ``r<i>``. An alias with an error entry, or missing from ``data``,
    is reported as not found.
    """
    if not isinstance(payload, dict):
        raise GitHubAPIError("malformed GraphQL response: expected an object")

    data = payload.get("data")
    if data is None:
        data = {}
    errors = payload.get("errors")
    if errors is None:
        errors = []
    if not isinstance(data, dict) or not isinstance(errors, list):
        raise GitHubAPIError("malformed GraphQL response envelope")

    error_aliases: dict[str, str] = {}
    for err in errors:
        if not isinstance(err, dict):
            continue
        path = err.get("path") or []
        if path:
            # later errors for the same alias replace earlier ones
            error_aliases[str(path[0])] = err.get("message", "")

    results = []
    for i, module in enumerate(modules):
        alias = f"r{i}"
        status = RepoStatus(module=module)

        repo_data = data.get(alias)
        if alias in error_aliases:
            status.not_found = True
            status.error = error_aliases[alias]
        elif isinstance(repo_data, dict):
            status.is_archived = bool(repo_data.get("isArchived"))
            status.archived_at = parse_timestamp(repo_data.get("archivedAt"))
            status.pushed_at = parse_timestamp(repo_data.get("pushedAt"))
        else:
            status.not_found = True
            status.error = NOT_FOUND_MESSAGE

        results.append(status)
    return results


class GitHubClient:
    """Queries GitHub for the archived status of many repositories at once."""

    def __init__(
        self,
        token: str | None = None,
        url: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token
        self.url = url or os.environ.get("MODROT_GITHUB_GRAPHQL_URL") or DEFAULT_GRAPHQL_URL
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @property
    def token(self) -> str:
        if self._token is None:
            self._token = get_token()
        return self._token

    async def check_repos(
        self, modules: list[Module], batch_size: int = DEFAULT_BATCH_SIZE
    ) -> list[RepoStatus]:
        """Return the archival status of every module, in input order.

        Modules are sent in consecutive batches of at most ``batch_size``.
        Any batch failing at the transport level aborts the whole call.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if not modules:
            return []
        for m in modules:
            if not m.owner:
                raise ValueError(f"module has no GitHub identity: {m.path}")

        token = self.token
        results: list[RepoStatus] = []
        for start in range(0, len(modules), batch_size):
            batch = modules[start : start + batch_size]
            log.info("github.batch", start=start, size=len(batch))
            try:
                results.extend(await self._query_batch(token, batch))
            except GitHubAPIError as e:
                raise GitHubAPIError(f"querying batch starting at index {start}: {e}") from e
        return results

    async def _query_batch(self, token: str, modules: list[Module]) -> list[RepoStatus]:
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        try:
            response = await self._client.post(
                self.url, json={"query": build_query(modules)}, headers=headers
            )
        except httpx.HTTPError as e:
            raise GitHubAPIError(f"GitHub API request failed: {e}") from e

        if not response.is_success:
            raise GitHubAPIError(
                f"GitHub API returned {response.status_code}: {response.text}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise GitHubAPIError(f"parsing response: {e}") from e

        return parse_response(payload, modules)
