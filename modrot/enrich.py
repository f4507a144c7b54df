"""Network enrichment phases built on the shared scheduler.

Each phase comes in two forms: one for the modules of a single go.mod and
one that deduplicates lookups across every go.mod of a recursive scan.
"""

from dataclasses import dataclass
from datetime import datetime

from .identity import assign_identity
from .models import Module, ModuleInfo, RepoIdentity
from .proxy import ProxyClient
from .resolve import VanityResolver
from .scheduler import run_enrichment_across

ACROSS_MAX_WORKERS = 20


@dataclass
class ProxyMetadata:
    """Proxy data recorded for a module that is not hosted on GitHub."""

    latest_version: str = ""
    source_url: str = ""
    version_time: datetime | None = None


def _path_key(m: Module) -> str:
    return m.path


def _version_key(m: Module) -> tuple[str, str]:
    return (m.path, m.version)


def _unresolved(m: Module) -> bool:
    return not m.owner


def _apply_metadata(m: Module, meta: ProxyMetadata) -> None:
    m.latest_version = meta.latest_version
    m.source_url = meta.source_url
    m.version_time = meta.version_time


def _apply_deprecation(m: Module, message: str) -> None:
    m.deprecated = message


# Vanity resolution


async def _resolve_datasets(
    datasets: list[list[Module]], resolver: VanityResolver, max_workers: int
) -> int:
    async def lookup(path: str) -> RepoIdentity | None:
        identity = await resolver.resolve_one(path)
        return identity or None

    return await run_enrichment_across(
        datasets,
        lookup,
        assign_identity,
        key=_path_key,
        needs=_unresolved,
        max_workers=max_workers,
        phase="resolve",
    )


async def resolve_vanity_imports(
    modules: list[Module], resolver: VanityResolver, max_workers: int = ACROSS_MAX_WORKERS
) -> int:
    """Fill in owner/repo for non-GitHub modules that have a GitHub mirror.

    Returns the number of module paths resolved.
    """
    return await _resolve_datasets([modules], resolver, max_workers)


async def resolve_across_modules(
    infos: list[ModuleInfo], resolver: VanityResolver, max_workers: int = ACROSS_MAX_WORKERS
) -> int:
    return await _resolve_datasets([mi.all_modules for mi in infos], resolver, max_workers)


# Proxy metadata for modules that stay non-GitHub


async def _enrich_datasets(
    datasets: list[list[Module]], proxy: ProxyClient, max_workers: int
) -> int:
    async def lookup(key: tuple[str, str]) -> ProxyMetadata:
        path, version = key
        latest = await proxy.fetch_latest(path)
        version_time = await proxy.fetch_version_time(path, version)
        return ProxyMetadata(latest.version, latest.origin_url, version_time)

    return await run_enrichment_across(
        datasets,
        lookup,
        _apply_metadata,
        key=_version_key,
        needs=_unresolved,
        max_workers=max_workers,
        phase="enrich",
    )


async def enrich_non_github(
    modules: list[Module], proxy: ProxyClient, max_workers: int = ACROSS_MAX_WORKERS
) -> None:
    """Record latest version, source URL and publish time of non-GitHub modules."""
    await _enrich_datasets([modules], proxy, max_workers)


async def enrich_across_modules(
    infos: list[ModuleInfo], proxy: ProxyClient, max_workers: int = ACROSS_MAX_WORKERS
) -> None:
    await _enrich_datasets([mi.all_modules for mi in infos], proxy, max_workers)


# Deprecation notices


async def _deprecation_datasets(
    datasets: list[list[Module]], proxy: ProxyClient, max_workers: int
) -> int:
    async def lookup(key: tuple[str, str]) -> str | None:
        message = await proxy.fetch_deprecation(*key)
        return message or None

    return await run_enrichment_across(
        datasets,
        lookup,
        _apply_deprecation,
        key=_version_key,
        max_workers=max_workers,
        phase="deprecation",
    )


async def check_deprecations(
    modules: list[Module], proxy: ProxyClient, max_workers: int = ACROSS_MAX_WORKERS
) -> int:
    """Record the go.mod deprecation message of every module.

    Returns the number of deprecated module versions found.
    """
    return await _deprecation_datasets([modules], proxy, max_workers)


async def check_deprecations_across_modules(
    infos: list[ModuleInfo], proxy: ProxyClient, max_workers: int = ACROSS_MAX_WORKERS
) -> int:
    return await _deprecation_datasets([mi.all_modules for mi in infos], proxy, max_workers)
