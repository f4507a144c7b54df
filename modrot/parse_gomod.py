"""go.mod and `go mod graph` parsing."""

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from .errors import GoModParseError, ModGraphError
from .identity import assign_identity, extract_identity
from .models import Module

log = structlog.get_logger("modrot.parse")

# Block directives whose contents are not requirements
_OTHER_BLOCKS = ("replace", "exclude", "retract", "tool", "godebug", "ignore")

_SKIP_DIRS = {"vendor", "testdata"}


@dataclass
class GoModFile:
    """A parsed go.mod file."""

    module_path: str = ""
    go_version: str = ""
    requires: list[Module] = field(default_factory=list)


def _unquote(token: str) -> str:
    if len(token) >= 2 and token[0] == token[-1] and token[0] in "\"`":
        return token[1:-1]
    return token


def _split_comment(line: str) -> tuple[str, str]:
    """Split a line into its code and the text of its trailing // comment."""
    idx = line.find("//")
    if idx < 0:
        return line.strip(), ""
    return line[:idx].strip(), line[idx + 2 :].strip()


def _is_indirect(comment: str) -> bool:
    return comment == "indirect" or comment.startswith("indirect;")


class GoModParser:
    """Parser for go.mod files."""

    def __init__(self, filename: str = "go.mod"):
        self.filename = filename

    def _error(self, lineno: int, message: str) -> GoModParseError:
        return GoModParseError(f"{self.filename}:{lineno}: {message}")

    def _parse_require(self, fields: list[str], comment: str, lineno: int) -> Module:
        if len(fields) != 2:
            raise self._error(lineno, "usage: require module/path v1.2.3")
        module = Module(
            path=_unquote(fields[0]),
            version=_unquote(fields[1]),
            direct=not _is_indirect(comment),
        )
        assign_identity(module, extract_identity(module.path))
        return module

    def parse(self, content: str) -> GoModFile:
        """Parse go.mod content into a GoModFile."""
        result = GoModFile()
        block: str | None = None
        block_start = 0

        for lineno, raw_line in enumerate(content.splitlines(), start=1):
            code, comment = _split_comment(raw_line)
            if not code:
                continue

            if block is not None:
                if code == ")":
                    block = None
                    continue
                if block == "require":
                    result.requires.append(
                        self._parse_require(code.split(), comment, lineno)
                    )
                continue

            fields = code.split()
            verb, args = fields[0], fields[1:]

            if args == ["("]:
                block = verb
                block_start = lineno
                continue

            if verb == "module":
                if len(args) != 1:
                    raise self._error(lineno, "usage: module module/path")
                result.module_path = _unquote(args[0])
            elif verb == "go":
                result.go_version = args[0] if args else ""
            elif verb == "require":
                result.requires.append(self._parse_require(args, comment, lineno))
            elif verb in _OTHER_BLOCKS or verb == "toolchain":
                continue
            else:
                raise self._error(lineno, f"unknown directive: {verb}")

        if block is not None:
            raise self._error(block_start, f"unterminated {block} block")

        return result


def parse_gomod(content: str, filename: str = "go.mod") -> GoModFile:
    """Parse go.mod content.

    Args:
        content: The go.mod file content
        filename: Name used in error messages

    Returns:
        Parsed GoModFile
    """
    return GoModParser(filename).parse(content)


def parse_gomod_file(path: str | Path) -> GoModFile:
    """Read and parse a go.mod file from disk."""
    try:
        content = Path(path).read_text()
    except OSError as e:
        raise GoModParseError(f"reading go.mod: {e}") from e
    return parse_gomod(content, str(path))


def module_name(path: str | Path) -> str:
    """Return the module directive of a go.mod file."""
    gomod = parse_gomod_file(path)
    if not gomod.module_path:
        raise GoModParseError(f"no module directive in {path}")
    return gomod.module_path


def parse_mod_graph(output: str) -> dict[str, list[str]]:
    """Parse `go mod graph` output into parent -> children adjacency.

    Node keys look like ``github.com/foo/bar@v1.2.3``; the main module has
    no version suffix.
    """
    graph: dict[str, list[str]] = {}
    for line in output.splitlines():
        parts = line.split()
        if len(parts) != 2:
            continue
        parent, child = parts
        graph.setdefault(parent, []).append(child)
    return graph


def load_mod_graph(directory: str | Path) -> dict[str, list[str]]:
    """Run `go mod graph` in a module directory and parse the result."""
    try:
        proc = subprocess.run(
            ["go", "mod", "graph"],
            cwd=directory,
            capture_output=True,
            text=True,
            check=True,
        )
    except FileNotFoundError as e:
        raise ModGraphError("go toolchain not found on PATH") from e
    except subprocess.CalledProcessError as e:
        raise ModGraphError(f"go mod graph failed: {e.stderr.strip()}") from e

    graph = parse_mod_graph(proc.stdout)
    log.debug("parse.mod_graph", directory=str(directory), nodes=len(graph))
    return graph


def find_gomod_files(root: str | Path) -> list[str]:
    """Find go.mod files under root, skipping vendor/, testdata/ and hidden dirs."""
    paths: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d for d in dirnames if d not in _SKIP_DIRS and not d.startswith(".")
        )
        if "go.mod" in filenames:
            paths.append(os.path.join(dirpath, "go.mod"))
    return sorted(paths)
