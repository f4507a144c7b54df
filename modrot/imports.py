"""Locating Go source files that import given modules, using ripgrep."""

import re
import shutil
import subprocess

import structlog

from .errors import ImportScanError
from .models import FileMatch

log = structlog.get_logger("modrot.imports")

_IMPORT_RE = re.compile(r'"([^"]+)"')


def build_import_pattern(module_paths: list[str]) -> str:
    """Regex matching a quoted import of any module or one of its packages."""
    escaped = "|".join(re.escape(p) for p in module_paths)
    return f'"({escaped})(/|")'


def parse_rg_line(line: str) -> tuple[str, int, str] | None:
    """Split a ``file:line:content`` line; None if it cannot be parsed."""
    parts = line.split(":", 2)
    if len(parts) != 3:
        return None
    file, line_num, content = parts
    try:
        return file, int(line_num), content
    except ValueError:
        return None


def match_module(import_path: str, module_paths: list[str]) -> str:
    """Module an import belongs to; module_paths must be sorted longest first."""
    for mod in module_paths:
        if import_path == mod or import_path.startswith(mod + "/"):
            return mod
    return ""


def parse_rg_output(
    output: str, project_dir: str, module_paths: list[str]
) -> dict[str, list[FileMatch]]:
    """Group ripgrep matches by the module each import belongs to."""
    by_length = sorted(module_paths, key=len, reverse=True)
    prefix = project_dir if project_dir.endswith("/") else project_dir + "/"

    results: dict[str, list[FileMatch]] = {}
    for line in output.splitlines():
        parsed = parse_rg_line(line)
        if parsed is None:
            continue
        file, line_num, content = parsed

        match = _IMPORT_RE.search(content)
        if not match:
            continue
        import_path = match.group(1)

        module = match_module(import_path, by_length)
        if not module:
            continue

        results.setdefault(module, []).append(
            FileMatch(file=file.removeprefix(prefix), line=line_num, import_path=import_path)
        )

    for matches in results.values():
        matches.sort(key=lambda m: (m.file, m.line))
    return results


def scan_imports(project_dir: str, module_paths: list[str]) -> dict[str, list[FileMatch]]:
    """Find .go files under project_dir importing any of module_paths.

    Modules not imported anywhere are absent from the result.
    """
    if not module_paths:
        return {}

    if shutil.which("rg") is None:
        raise ImportScanError(
            "rg (ripgrep) is required for --files; "
            "install from https://github.com/BurntSushi/ripgrep"
        )

    cmd = [
        "rg", "-n", "--no-heading",
        "--glob", "*.go",
        "--glob", "!vendor/",
        "-e", build_import_pattern(module_paths),
        project_dir,
    ]
    proc = subprocess.run(cmd, capture_output=True, text=True)
    # rg exits 1 when nothing matched
    if proc.returncode == 1:
        return {}
    if proc.returncode != 0:
        raise ImportScanError(f"running rg: {proc.stderr.strip()}")

    results = parse_rg_output(proc.stdout, project_dir, module_paths)
    log.debug("imports.scanned", project_dir=project_dir, modules=len(results))
    return results
