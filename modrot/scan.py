"""End-to-end scans of one go.mod or a tree of them."""

import os
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from .enrich import (
    check_deprecations,
    check_deprecations_across_modules,
    enrich_across_modules,
    enrich_non_github,
    resolve_across_modules,
    resolve_vanity_imports,
)
from .errors import ImportScanError, ModGraphError, ModrotError
from .github import DEFAULT_BATCH_SIZE, GitHubClient
from .identity import deduplicate_by_identity
from .imports import scan_imports
from .models import Module, ModuleInfo, RepoStatus
from .output import OutputOptions, Reporter, build_json_output, build_tree_json_output, pluralize
from .parse_gomod import find_gomod_files, load_mod_graph, parse_gomod_file
from .proxy import ProxyClient
from .resolve import VanityResolver
from .tree import build_tree

log = structlog.get_logger("modrot.scan")

EXIT_CLEAN = 0
EXIT_ARCHIVED = 1
EXIT_ERROR = 2


@dataclass
class ScanConfig:
    """Options for one run."""

    json_mode: bool = False
    show_all: bool = False
    direct_only: bool = False
    workers: int = DEFAULT_BATCH_SIZE  # repos per GraphQL request
    tree: bool = False
    files: bool = False
    resolve: bool = False
    deprecated: bool = False
    skipped: bool = False
    max_workers: int = 20  # concurrent proxy and vanity lookups
    output: OutputOptions = field(default_factory=OutputOptions)


@dataclass
class Clients:
    """Network clients used by a scan; any left as None are created on demand."""

    github: GitHubClient | None = None
    proxy: ProxyClient | None = None
    resolver: VanityResolver | None = None


def apply_status(modules: list[Module], status_map: dict) -> list[RepoStatus]:
    """Copy globally queried statuses onto the modules of one go.mod."""
    results = []
    for m in modules:
        status = RepoStatus(module=m)
        found = status_map.get(m.identity)
        if found is not None:
            status.is_archived = found.is_archived
            status.archived_at = found.archived_at
            status.pushed_at = found.pushed_at
            status.not_found = found.not_found
            status.error = found.error
        results.append(status)
    return results


def archived_paths(results: list[RepoStatus]) -> list[str]:
    return [r.module.path for r in results if r.is_archived]


def deprecated_modules(modules: list[Module], direct_only: bool) -> list[Module]:
    return [m for m in modules if m.deprecated and (m.direct or not direct_only)]


def non_github_modules(modules: list[Module], direct_only: bool) -> list[Module]:
    return [m for m in modules if not m.owner and (m.direct or not direct_only)]


async def _open_clients(stack: AsyncExitStack, clients: Clients | None) -> Clients:
    clients = clients or Clients()
    proxy = clients.proxy or await stack.enter_async_context(ProxyClient())
    resolver = clients.resolver or await stack.enter_async_context(VanityResolver(proxy=proxy))
    github = clients.github or await stack.enter_async_context(GitHubClient())
    return Clients(github=github, proxy=proxy, resolver=resolver)


def _resolve_gomod_path(path: str) -> Path:
    gomod = Path(path).resolve()
    if gomod.is_dir():
        gomod = gomod / "go.mod"
    return gomod


def _render(
    reporter: Reporter,
    cfg: ScanConfig,
    results: list[RepoStatus],
    all_modules: list[Module],
    non_github_count: int,
    project_dir: str,
    strict_files: bool,
) -> dict | None:
    """Render one go.mod's results.

    Returns the JSON document when in JSON mode instead of printing it.
    """
    paths = archived_paths(results)
    deprecated = deprecated_modules(all_modules, cfg.direct_only) if cfg.deprecated else []
    skipped = non_github_modules(all_modules, cfg.direct_only) if cfg.skipped else []

    file_matches = None
    if cfg.files and paths:
        try:
            file_matches = scan_imports(project_dir, paths)
        except ImportScanError:
            if strict_files:
                raise
            log.warning("scan.imports_failed", project_dir=project_dir, exc_info=True)
            reporter.note(f"Warning: could not scan imports for {project_dir}", style="yellow")

    if cfg.tree and (paths or cfg.json_mode):
        try:
            graph = load_mod_graph(project_dir) if paths else {}
        except ModGraphError as e:
            reporter.note(f"Warning: could not run go mod graph: {e}", style="yellow")
            graph = None
        if graph is not None:
            entries, ctx = build_tree(results, graph, all_modules)
            if cfg.json_mode:
                return build_tree_json_output(
                    entries, ctx, len(results), non_github_count,
                    file_matches, deprecated, skipped, cfg.output,
                )
            reporter.print_tree(entries, ctx, file_matches)
            if deprecated:
                reporter.print_deprecated_table(deprecated)
            if skipped:
                reporter.print_skipped_table(skipped)
            elif non_github_count:
                reporter.note(f"\nSkipped {non_github_count} non-GitHub modules.")
            return None

    if cfg.json_mode:
        return build_json_output(
            results, non_github_count, cfg.show_all, file_matches, deprecated, skipped, cfg.output
        )

    reporter.print_table(results, cfg.show_all, deprecated, skipped)
    if file_matches is not None:
        reporter.print_files(results, file_matches)
    return None


async def run_single(
    path: str, cfg: ScanConfig, reporter: Reporter, clients: Clients | None = None
) -> int:
    """Check one go.mod. Returns the process exit code."""
    gomod = _resolve_gomod_path(path)

    async with AsyncExitStack() as stack:
        try:
            all_modules = parse_gomod_file(gomod).requires
            c = await _open_clients(stack, clients)

            if cfg.resolve:
                resolved = await resolve_vanity_imports(all_modules, c.resolver, cfg.max_workers)
                if resolved:
                    reporter.note(f"Resolved {resolved} non-GitHub modules to GitHub repos.")

            if cfg.deprecated:
                count = await check_deprecations(all_modules, c.proxy, cfg.max_workers)
                if count:
                    reporter.note(
                        f"Found {count} deprecated {pluralize(count, 'module', 'modules')}."
                    )

            github_modules, non_github_count = deduplicate_by_identity(all_modules, cfg.direct_only)
            if not github_modules:
                reporter.note(f"No GitHub modules found in {gomod}")
                return EXIT_CLEAN

            if cfg.skipped:
                await enrich_non_github(
                    non_github_modules(all_modules, cfg.direct_only), c.proxy, cfg.max_workers
                )

            reporter.note(f"Checking {len(github_modules)} GitHub modules...")
            results = await c.github.check_repos(github_modules, cfg.workers)

            doc = _render(
                reporter, cfg, results, all_modules, non_github_count,
                str(gomod.parent), strict_files=True,
            )
        except ModrotError as e:
            reporter.note(f"Error: {e}", style="red")
            return EXIT_ERROR

    if doc is not None:
        reporter.emit_json(doc)
    return EXIT_ARCHIVED if archived_paths(results) else EXIT_CLEAN


def load_module_infos(root: str, reporter: Reporter) -> list[ModuleInfo]:
    """Parse every go.mod under root, skipping (with a warning) ones that fail."""
    infos = []
    for gomod in find_gomod_files(root):
        try:
            parsed = parse_gomod_file(gomod)
        except ModrotError as e:
            reporter.note(f"Warning: skipping {gomod}: {e}", style="yellow")
            continue
        infos.append(
            ModuleInfo(
                gomod_path=gomod,
                rel_path=os.path.relpath(gomod, root),
                module_name=parsed.module_path,
                all_modules=parsed.requires,
            )
        )
    return infos


async def run_recursive(
    root: str, cfg: ScanConfig, reporter: Reporter, clients: Clients | None = None
) -> int:
    """Check every go.mod under root, querying GitHub once for all of them."""
    if not find_gomod_files(root):
        reporter.note(f"No go.mod files found in {root}", style="red")
        return EXIT_ERROR

    infos = load_module_infos(root, reporter)
    if not infos:
        reporter.note("No valid go.mod files found.", style="red")
        return EXIT_ERROR

    async with AsyncExitStack() as stack:
        try:
            c = await _open_clients(stack, clients)

            if cfg.resolve:
                resolved = await resolve_across_modules(infos, c.resolver, cfg.max_workers)
                if resolved:
                    reporter.note(f"Resolved {resolved} non-GitHub modules to GitHub repos.")

            if cfg.deprecated:
                count = await check_deprecations_across_modules(infos, c.proxy, cfg.max_workers)
                if count:
                    reporter.note(
                        f"Found {count} deprecated {pluralize(count, 'module', 'modules')}."
                    )

            all_github = []
            for mi in infos:
                mi.github_modules, mi.non_github_count = deduplicate_by_identity(
                    mi.all_modules, cfg.direct_only
                )
                all_github.extend(mi.github_modules)
            # Repositories shared between go.mod files are queried once
            unique, _ = deduplicate_by_identity(all_github)

            if not unique:
                reporter.note(f"No GitHub modules found across {len(infos)} go.mod files.")
                return EXIT_CLEAN

            if cfg.skipped:
                await enrich_across_modules(infos, c.proxy, cfg.max_workers)

            reporter.note(
                f"Found {len(infos)} go.mod files, checking {len(unique)} unique GitHub repos..."
            )
            statuses = await c.github.check_repos(unique, cfg.workers)
        except ModrotError as e:
            reporter.note(f"Error: {e}", style="red")
            return EXIT_ERROR

    status_map = {s.module.identity: s for s in statuses}
    any_archived = False
    documents = []

    for i, mi in enumerate(infos):
        results = apply_status(mi.github_modules, status_map)
        if archived_paths(results):
            any_archived = True

        if not cfg.json_mode:
            if i > 0:
                reporter.note("")
            reporter.note(f"=== {mi.rel_path} - {mi.module_name} ===")
            if not mi.github_modules:
                reporter.note("No GitHub modules found.")
                continue

        doc = _render(
            reporter, cfg, results, mi.all_modules, mi.non_github_count,
            os.path.dirname(mi.gomod_path), strict_files=False,
        )
        if doc is not None:
            documents.append({"go_mod": mi.rel_path, "module_path": mi.module_name, **doc})

    if cfg.json_mode:
        reporter.emit_json({"modules": documents})
    return EXIT_ARCHIVED if any_archived else EXIT_CLEAN
