"""Core data models for modrot."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class RepoIdentity:
    """A GitHub repository, identified by owner and name."""

    owner: str = ""
    repo: str = ""

    def __bool__(self) -> bool:
        return bool(self.owner)

    @property
    def key(self) -> str:
        return f"{self.owner}/{self.repo}"


EMPTY_IDENTITY = RepoIdentity()


@dataclass
class Module:
    """A single requirement from a go.mod file."""

    path: str  # full module path, e.g. github.com/foo/bar/v2
    version: str
    direct: bool = True
    owner: str = ""  # empty for non-GitHub modules
    repo: str = ""
    # Filled in by the proxy enrichment phases
    latest_version: str = ""
    source_url: str = ""
    version_time: datetime | None = None
    deprecated: str = ""

    @property
    def identity(self) -> RepoIdentity:
        return RepoIdentity(self.owner, self.repo)


@dataclass
class RepoStatus:
    """Archival status of one repository as reported by GitHub."""

    module: Module
    is_archived: bool = False
    archived_at: datetime | None = None
    pushed_at: datetime | None = None
    not_found: bool = False
    error: str = ""


@dataclass
class TreeEntry:
    """A direct dependency and the archived modules reachable beneath it."""

    direct_path: str
    version: str = ""
    is_archived: bool = False
    archived: list[str] = field(default_factory=list)  # first-discovered order


@dataclass
class TreeContext:
    """Lookups used to render tree entries."""

    archived_paths: set[str]
    version_by_path: dict[str, str]
    deprecated_by_path: dict[str, str]
    get_status: Callable[[str], RepoStatus | None]


@dataclass
class FileMatch:
    """A source file that imports an archived module."""

    file: str  # relative to the project root
    line: int
    import_path: str


@dataclass
class ModuleInfo:
    """One parsed go.mod file within a recursive scan."""

    gomod_path: str
    rel_path: str
    module_name: str
    all_modules: list[Module]
    github_modules: list[Module] = field(default_factory=list)
    non_github_count: int = 0

    @property
    def non_github_modules(self) -> list[Module]:
        return [m for m in self.all_modules if not m.owner]
