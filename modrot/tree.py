"""Which direct dependencies pull in archived modules, via `go mod graph`."""

from .identity import extract_identity
from .models import Module, RepoStatus, TreeContext, TreeEntry

Graph = dict[str, list[str]]


def strip_version(node: str) -> str:
    """Strip the @version suffix from a graph node, e.g. github.com/a/b@v1.2.3."""
    idx = node.rfind("@")
    if idx > 0:
        return node[:idx]
    return node


def find_root(graph: Graph) -> str | None:
    """Find the main module of a graph.

    The main module is the only node without an @version suffix. If no such
    node exists, the node with the most children is used instead. Returns
    None for an empty graph.
    """
    for node in graph:
        if "@" not in node:
            return node

    root = None
    max_children = 0
    for node, children in graph.items():
        if len(children) > max_children:
            max_children = len(children)
            root = node
    return root


def find_archived_transitive(
    start: str, graph: Graph, archived_paths: set[str], visited: set[str] | None = None
) -> list[str]:
    """List archived module paths reachable from ``start``, depth first.

    Paths are deduplicated and kept in the order they were first reached.
    ``visited`` guards against cycles: a node is expanded at most once.
    """
    if visited is None:
        visited = set()
    if start in visited:
        return []
    visited.add(start)

    found: dict[str, None] = {}
    stack = [iter(graph.get(start, ()))]
    while stack:
        child = next(stack[-1], None)
        if child is None:
            stack.pop()
            continue
        child_path = strip_version(child)
        if child_path in archived_paths:
            found.setdefault(child_path)
        if child not in visited:
            visited.add(child)
            stack.append(iter(graph.get(child, ())))
    return list(found)


def archived_module_paths(statuses: list[RepoStatus], all_modules: list[Module]) -> set[str]:
    """Module paths whose repository is archived.

    Archival belongs to the repository, so every module path that maps to an
    archived owner/repo is included, not only the one that was queried.
    """
    archived = {s.module.path for s in statuses if s.is_archived}
    archived_repos = {s.module.identity for s in statuses if s.is_archived}
    for m in all_modules:
        if m.owner and m.identity in archived_repos:
            archived.add(m.path)
    return archived


def build_context(statuses: list[RepoStatus], all_modules: list[Module]) -> TreeContext:
    status_by_repo = {s.module.identity: s for s in statuses if s.is_archived}
    repo_by_path = {m.path: m.identity for m in all_modules if m.owner}

    def get_status(path: str) -> RepoStatus | None:
        identity = repo_by_path.get(path) or extract_identity(path)
        return status_by_repo.get(identity) if identity else None

    return TreeContext(
        archived_paths=archived_module_paths(statuses, all_modules),
        version_by_path={m.path: m.version for m in all_modules},
        deprecated_by_path={m.path: m.deprecated for m in all_modules if m.deprecated},
        get_status=get_status,
    )


def build_tree(
    statuses: list[RepoStatus], graph: Graph, all_modules: list[Module]
) -> tuple[list[TreeEntry], TreeContext]:
    """Compute the archived modules beneath each direct dependency.

    A direct dependency appears in the result when it is archived itself or
    has archived modules below it. Its own path is never listed among its
    transitive archived modules. Entries are sorted by module path.

    Without a usable graph, one entry per archived status is returned with
    no transitive detail.
    """
    ctx = build_context(statuses, all_modules)
    if not ctx.archived_paths:
        return [], ctx

    root = find_root(graph)
    if root is None:
        entries = [
            TreeEntry(direct_path=s.module.path, version=s.module.version, is_archived=True)
            for s in statuses
            if s.is_archived
        ]
        return sorted(entries, key=lambda e: e.direct_path), ctx

    entries = []
    for child in graph.get(root, []):
        child_path = strip_version(child)
        is_archived = child_path in ctx.archived_paths
        transitive = [
            p for p in find_archived_transitive(child, graph, ctx.archived_paths)
            if p != child_path
        ]
        if is_archived or transitive:
            version = ctx.version_by_path.get(child_path) or child[len(child_path) + 1 :]
            entries.append(
                TreeEntry(
                    direct_path=child_path,
                    version=version,
                    is_archived=is_archived,
                    archived=transitive,
                )
            )

    entries.sort(key=lambda e: e.direct_path)
    return entries, ctx
