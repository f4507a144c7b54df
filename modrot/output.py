"""Human-readable and JSON reports."""

import calendar
import json
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .models import FileMatch, Module, RepoStatus, TreeContext, TreeEntry

JSON_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

FileMatches = dict[str, list[FileMatch]]


@dataclass
class OutputOptions:
    """Formatting settings for one run."""

    show_time: bool = False
    duration_end: date | None = None  # set to report how long modules have been archived

    @property
    def date_format(self) -> str:
        return "%Y-%m-%d %H:%M:%S" if self.show_time else "%Y-%m-%d"


def pluralize(n: int, singular: str, plural: str) -> str:
    return singular if n == 1 else plural


def fmt_date(dt: datetime | None, options: OutputOptions) -> str:
    if dt is None:
        return ""
    return dt.strftime(options.date_format)


def fmt_json_time(dt: datetime | None) -> str:
    if dt is None:
        return ""
    return dt.strftime(JSON_TIME_FORMAT)


def host_domain(module_path: str) -> str:
    return module_path.split("/", 1)[0]


def calc_duration(archived_at: date, end: date) -> tuple[int, int, int]:
    """Calendar (years, months, days) from archived_at to end, end day included.

    Archived and ended on the same day counts as one day.
    """
    end = end + timedelta(days=1)

    years = end.year - archived_at.year
    months = end.month - archived_at.month
    days = end.day - archived_at.day

    if days < 0:
        months -= 1
        prev_year, prev_month = (end.year, end.month - 1) if end.month > 1 else (end.year - 1, 12)
        days += calendar.monthrange(prev_year, prev_month)[1]
    if months < 0:
        years -= 1
        months += 12
    return years, months, days


def _duration_parts(archived_at: datetime | None, options: OutputOptions):
    if options.duration_end is None or archived_at is None:
        return None
    return calc_duration(archived_at.date(), options.duration_end)


def format_duration(archived_at: datetime | None, options: OutputOptions) -> str:
    """Long form, e.g. "1 year, 2 months, 3 days"; empty when disabled."""
    parts = _duration_parts(archived_at, options)
    if parts is None:
        return ""
    y, m, d = parts
    out = []
    if y > 0:
        out.append(f"{y} {pluralize(y, 'year', 'years')}")
    if m > 0:
        out.append(f"{m} {pluralize(m, 'month', 'months')}")
    if d > 0 or not out:
        out.append(f"{d} {pluralize(d, 'day', 'days')}")
    return ", ".join(out)


def format_duration_short(archived_at: datetime | None, options: OutputOptions) -> str:
    """Compact form, e.g. "1y 2m 3d"; empty when disabled."""
    parts = _duration_parts(archived_at, options)
    if parts is None:
        return ""
    y, m, d = parts
    out = []
    if y > 0:
        out.append(f"{y}y")
    if m > 0:
        out.append(f"{m}m")
    if d > 0 or not out:
        out.append(f"{d}d")
    return " ".join(out)


def format_archived_line(path: str, version: str, status: RepoStatus, options: OutputOptions) -> str:
    line = path
    if version:
        line += f"@{version}"
    line += " [ARCHIVED"
    if status.archived_at is not None:
        line += " " + fmt_date(status.archived_at, options)
    duration = format_duration_short(status.archived_at, options)
    if duration:
        line += ", " + duration
    if status.pushed_at is not None:
        line += ", last pushed " + fmt_date(status.pushed_at, options)
    return line + "]"


def _direct_label(direct: bool) -> str:
    return "direct" if direct else "indirect"


# JSON


def to_json(data: Any) -> str:
    return json.dumps(data, indent=2)


def _source_files(path: str, file_matches: FileMatches | None) -> list[dict]:
    if file_matches is None:
        return []
    return [
        {"file": fm.file, "line": fm.line, "import": fm.import_path}
        for fm in file_matches.get(path, [])
    ]


def _skipped_json(modules: list[Module]) -> list[dict]:
    out = []
    for m in modules:
        item: dict[str, Any] = {
            "module": m.path,
            "version": m.version,
            "direct": m.direct,
        }
        if m.latest_version:
            item["latest_version"] = m.latest_version
        if m.version_time is not None:
            item["published"] = fmt_json_time(m.version_time)
        item["host"] = host_domain(m.path)
        if m.source_url:
            item["source_url"] = m.source_url
        out.append(item)
    return out


def _deprecated_json(modules: list[Module]) -> list[dict]:
    return [
        {
            "module": m.path,
            "version": m.version,
            "direct": m.direct,
            "owner": m.owner,
            "repo": m.repo,
            "deprecated_message": m.deprecated,
        }
        for m in modules
    ]


def _add_status_times(item: dict, status: RepoStatus | None, options: OutputOptions) -> None:
    if status is None:
        return
    if status.archived_at is not None:
        item["archived_at"] = fmt_json_time(status.archived_at)
    duration = format_duration(status.archived_at, options)
    if duration:
        item["archived_duration"] = duration
    if status.pushed_at is not None:
        item["pushed_at"] = fmt_json_time(status.pushed_at)


def build_json_output(
    results: list[RepoStatus],
    non_github_count: int,
    show_all: bool,
    file_matches: FileMatches | None = None,
    deprecated_modules: list[Module] | None = None,
    non_github_modules: list[Module] | None = None,
    options: OutputOptions | None = None,
) -> dict:
    """Report for one go.mod as a JSON-ready dict."""
    options = options or OutputOptions()
    archived, not_found, active = [], [], []

    for r in results:
        item: dict[str, Any] = {
            "module": r.module.path,
            "version": r.module.version,
            "direct": r.module.direct,
            "owner": r.module.owner,
            "repo": r.module.repo,
        }
        if r.not_found:
            if r.pushed_at is not None:
                item["pushed_at"] = fmt_json_time(r.pushed_at)
            item["error"] = r.error
            not_found.append(item)
        elif r.is_archived:
            _add_status_times(item, r, options)
            files = _source_files(r.module.path, file_matches)
            if files:
                item["source_files"] = files
            archived.append(item)
        elif show_all:
            if r.pushed_at is not None:
                item["pushed_at"] = fmt_json_time(r.pushed_at)
            active.append(item)

    out: dict[str, Any] = {"archived": archived}
    if deprecated_modules:
        out["deprecated"] = _deprecated_json(deprecated_modules)
    if not_found:
        out["not_found"] = not_found
    if active:
        out["active"] = active
    out["non_github_count"] = non_github_count
    if non_github_modules:
        out["non_github_modules"] = _skipped_json(non_github_modules)
    out["total_checked"] = len(results)
    return out


def build_tree_json_output(
    entries: list[TreeEntry],
    ctx: TreeContext,
    total_checked: int,
    non_github_count: int,
    file_matches: FileMatches | None = None,
    deprecated_modules: list[Module] | None = None,
    non_github_modules: list[Module] | None = None,
    options: OutputOptions | None = None,
) -> dict:
    """Dependency tree for one go.mod as a JSON-ready dict."""
    options = options or OutputOptions()
    tree = []

    for e in entries:
        item: dict[str, Any] = {
            "module": e.direct_path,
            "version": e.version,
            "archived": e.is_archived,
        }
        if e.is_archived:
            _add_status_times(item, ctx.get_status(e.direct_path), options)
        if ctx.deprecated_by_path.get(e.direct_path):
            item["deprecated_message"] = ctx.deprecated_by_path[e.direct_path]
        if e.is_archived:
            files = _source_files(e.direct_path, file_matches)
            if files:
                item["source_files"] = files

        deps = []
        for path in e.archived:
            dep: dict[str, Any] = {
                "module": path,
                "version": ctx.version_by_path.get(path, ""),
            }
            _add_status_times(dep, ctx.get_status(path), options)
            if ctx.deprecated_by_path.get(path):
                dep["deprecated_message"] = ctx.deprecated_by_path[path]
            files = _source_files(path, file_matches)
            if files:
                dep["source_files"] = files
            deps.append(dep)
        item["archived_dependencies"] = deps
        tree.append(item)

    out: dict[str, Any] = {"tree": tree}
    if deprecated_modules:
        out["deprecated"] = _deprecated_json(deprecated_modules)
    out["non_github_count"] = non_github_count
    if non_github_modules:
        out["non_github_modules"] = _skipped_json(non_github_modules)
    out["total_checked"] = total_checked
    return out


# Text


def _table(*headers: str) -> Table:
    table = Table(box=None, show_edge=False, pad_edge=False, header_style="bold")
    for h in headers:
        table.add_column(h, no_wrap=True)
    return table


def _add_row(table: Table, *cells: str) -> None:
    table.add_row(*(Text(c) for c in cells))


class Reporter:
    """Writes reports: tables and trees to ``out``, headings and notes to ``err``."""

    def __init__(
        self,
        options: OutputOptions | None = None,
        out: Console | None = None,
        err: Console | None = None,
    ):
        self.options = options or OutputOptions()
        self.out = out or Console(highlight=False)
        self.err = err or Console(stderr=True, highlight=False)

    def note(self, message: str, style: str | None = None) -> None:
        self.err.print(message, style=style, markup=False, highlight=False, soft_wrap=True)

    def line(self, text: str) -> None:
        self.out.print(text, markup=False, highlight=False, soft_wrap=True)

    def emit_json(self, data: Any) -> None:
        self.line(to_json(data))

    def print_table(
        self,
        results: list[RepoStatus],
        show_all: bool,
        deprecated_modules: list[Module] | None = None,
        non_github_modules: list[Module] | None = None,
    ) -> None:
        """Archived (and optionally active) modules, plus not-found notes."""
        opts = self.options
        archived = sorted((r for r in results if r.is_archived and not r.not_found),
                          key=lambda r: r.module.path)
        not_found = [r for r in results if r.not_found]
        active = sorted((r for r in results if not r.is_archived and not r.not_found),
                        key=lambda r: r.module.path)
        total = len(results)
        with_duration = opts.duration_end is not None

        if archived:
            self.note(f"\nARCHIVED DEPENDENCIES ({len(archived)} of {total} github.com modules)\n")
            headers = ["MODULE", "VERSION", "DIRECT", "ARCHIVED AT"]
            if with_duration:
                headers.append("DURATION")
            headers.append("LAST PUSHED")
            table = _table(*headers)
            for r in archived:
                row = [r.module.path, r.module.version, _direct_label(r.module.direct),
                       fmt_date(r.archived_at, opts)]
                if with_duration:
                    row.append(format_duration(r.archived_at, opts))
                row.append(fmt_date(r.pushed_at, opts))
                _add_row(table, *row)
            self.out.print(table)
        else:
            self.note(f"\nNo archived dependencies found among {total} github.com modules.")

        if not_found:
            self.note(f"\nNOT FOUND ({len(not_found)} modules):")
            for r in not_found:
                self.note(f"  {r.module.path} - {r.error}")

        if show_all and active:
            self.note(f"\nACTIVE DEPENDENCIES ({len(active)} modules)\n")
            table = _table("MODULE", "VERSION", "DIRECT", "LAST PUSHED")
            for r in active:
                _add_row(table, r.module.path, r.module.version,
                         _direct_label(r.module.direct), fmt_date(r.pushed_at, opts))
            self.out.print(table)

        if deprecated_modules:
            self.print_deprecated_table(deprecated_modules)

        if non_github_modules:
            self.print_skipped_table(non_github_modules)

    def print_deprecated_table(self, modules: list[Module]) -> None:
        modules = sorted(modules, key=lambda m: m.path)
        n = len(modules)
        self.note(f"\nDEPRECATED MODULES ({n} {pluralize(n, 'module', 'modules')})\n")
        table = _table("MODULE", "VERSION", "DIRECT", "MESSAGE")
        for m in modules:
            _add_row(table, m.path, m.version, _direct_label(m.direct), m.deprecated)
        self.out.print(table)

    def print_skipped_table(self, modules: list[Module]) -> None:
        """Non-GitHub modules with whatever the proxy told us about them."""
        modules = sorted(modules, key=lambda m: m.path)
        n = len(modules)
        self.note(f"\nNON-GITHUB MODULES ({n} non-GitHub {pluralize(n, 'module', 'modules')})\n")
        table = _table("MODULE", "VERSION", "LATEST", "DIRECT", "PUBLISHED", "SOURCE")
        for m in modules:
            latest = "-" if m.latest_version and m.latest_version == m.version else m.latest_version
            _add_row(table, m.path, m.version, latest, _direct_label(m.direct),
                     fmt_date(m.version_time, self.options), m.source_url)
        self.out.print(table)

    def print_files(self, results: list[RepoStatus], file_matches: FileMatches) -> None:
        archived = sorted(r.module.path for r in results if r.is_archived)
        self.note("\nSOURCE FILES IMPORTING ARCHIVED MODULES")
        for path in archived:
            matches = file_matches.get(path, [])
            n = len({m.file for m in matches})
            self.line(f"\n{path} ({n} {pluralize(n, 'file', 'files')})")
            for m in matches:
                self.line(f"  {m.file}:{m.line}")

    def print_tree(
        self,
        entries: list[TreeEntry],
        ctx: TreeContext,
        file_matches: FileMatches | None = None,
    ) -> None:
        """Direct dependencies with their archived transitive dependencies beneath."""
        if not entries:
            self.note("\nNo archived dependencies found.")
            return

        self.note("\nDEPENDENCY TREE (archived dependencies marked with [ARCHIVED])\n")

        def suffix(path: str) -> str:
            s = " [DEPRECATED]" if ctx.deprecated_by_path.get(path) else ""
            if file_matches is not None:
                n = len({m.file for m in file_matches.get(path, [])})
                s += f" ({n} {pluralize(n, 'file', 'files')})"
            return s

        def label(path: str, version: str) -> str:
            status = ctx.get_status(path)
            if status is None:
                return f"{path} [ARCHIVED]"
            return format_archived_line(path, version, status, self.options)

        for e in entries:
            if e.is_archived:
                self.line(label(e.direct_path, e.version) + suffix(e.direct_path))
            elif e.version:
                self.line(f"{e.direct_path}@{e.version}")
            else:
                self.line(e.direct_path)

            for i, path in enumerate(e.archived):
                connector = "└── " if i == len(e.archived) - 1 else "├── "
                version = ctx.version_by_path.get(path, "")
                self.line(f"  {connector}{label(path, version)}{suffix(path)}")
