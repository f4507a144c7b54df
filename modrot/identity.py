"""Mapping module paths and repository URLs to GitHub repositories."""

from .models import EMPTY_IDENTITY, Module, RepoIdentity

HOST = "github.com"


def extract_identity(path: str) -> RepoIdentity:
    """Extract the GitHub owner and repo from a module path.

    Only the two segments after the host are used, so nested modules and
    major-version suffixes collapse onto their repository:

        github.com/foo/bar          -> (foo, bar)
        github.com/foo/bar/v2       -> (foo, bar)
        github.com/foo/bar/sdk/v2   -> (foo, bar)

    Returns an empty identity for non-GitHub paths.
    """
    if not path.startswith(HOST + "/"):
        return EMPTY_IDENTITY
    parts = path.split("/", 3)
    if len(parts) < 3 or not parts[1] or not parts[2]:
        return EMPTY_IDENTITY
    return RepoIdentity(parts[1], parts[2])


def extract_identity_from_url(raw_url: object) -> RepoIdentity:
    """Extract a GitHub identity from a repository URL.

    Accepts https://github.com/owner/repo, a trailing .git or slash, and
    URLs without a scheme.
    """
    if not raw_url or not isinstance(raw_url, str):
        return EMPTY_IDENTITY

    s = raw_url
    if "://" in s:
        s = s.split("://", 1)[1]

    if not s.startswith(HOST + "/"):
        return EMPTY_IDENTITY

    s = s[len(HOST) + 1 :]
    s = s.removesuffix(".git").rstrip("/")

    parts = s.split("/", 2)
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return EMPTY_IDENTITY
    return RepoIdentity(parts[0], parts[1])


def assign_identity(module: Module, identity: RepoIdentity) -> None:
    module.owner = identity.owner
    module.repo = identity.repo


def deduplicate_by_identity(
    modules: list[Module], direct_only: bool = False
) -> tuple[list[Module], int]:
    """Split modules into unique GitHub repositories and a non-GitHub count.

    The first module seen for a repository is kept; later modules that map to
    the same owner/repo (submodules, major versions) are dropped. Callers rely
    on this order to decide which version and direct flag get reported.
    """
    seen: set[RepoIdentity] = set()
    github: list[Module] = []
    non_github_count = 0

    for module in modules:
        if direct_only and not module.direct:
            continue
        identity = module.identity
        if not identity:
            non_github_count += 1
            continue
        if identity in seen:
            continue
        seen.add(identity)
        github.append(module)

    return github, non_github_count
