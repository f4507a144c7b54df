"""Tests for transitive archived-dependency analysis."""

from modrot.models import RepoStatus
from modrot.tree import (
    archived_module_paths,
    build_tree,
    find_archived_transitive,
    find_root,
    strip_version,
)


def archived(m) -> RepoStatus:
    return RepoStatus(module=m, is_archived=True)


class TestStripVersion:
    def test_strips(self):
        assert strip_version("github.com/a/b@v1.2.3") == "github.com/a/b"

    def test_no_version(self):
        assert strip_version("example.com/app") == "example.com/app"


class TestFindRoot:
    def test_unversioned_node(self):
        graph = {"a@v1": ["b@v1"], "example.com/app": ["a@v1"]}
        assert find_root(graph) == "example.com/app"

    def test_most_children_fallback(self):
        graph = {"a@v1": ["x@v1"], "b@v1": ["x@v1", "y@v1", "z@v1"], "c@v1": ["y@v1"]}
        assert find_root(graph) == "b@v1"

    def test_empty(self):
        assert find_root({}) is None


class TestFindArchivedTransitive:
    """Test the depth-first search."""

    def test_cycle_terminates(self):
        """A -> B -> A with B archived."""
        graph = {"a@v1": ["b@v1"], "b@v1": ["a@v1"]}
        assert find_archived_transitive("a@v1", graph, {"b"}) == ["b"]

    def test_depth_first_order_and_dedupe(self):
        graph = {
            "d@v1": ["x@v1", "y@v1"],
            "x@v1": ["deep@v1", "shared@v1"],
            "y@v1": ["shared@v2"],
        }
        found = find_archived_transitive("d@v1", graph, {"deep", "shared", "y"})
        assert found == ["deep", "shared", "y"]

    def test_archived_reached_twice_recorded_once(self):
        graph = {"d@v1": ["p@v1", "q@v1"], "p@v1": ["z@v1"], "q@v1": ["z@v1"]}
        assert find_archived_transitive("d@v1", graph, {"z"}) == ["z"]

    def test_nothing_archived(self):
        graph = {"d@v1": ["x@v1"], "x@v1": ["y@v1"]}
        assert find_archived_transitive("d@v1", graph, set()) == []

    def test_start_already_visited(self):
        assert find_archived_transitive("d@v1", {"d@v1": ["z@v1"]}, {"z"}, visited={"d@v1"}) == []


class TestArchivedModulePaths:
    def test_multi_path_repository(self, module):
        """Every path of an archived repo counts as archived."""
        v1 = module("github.com/x/a", "v1.0.0")
        v2 = module("github.com/x/a/v2", "v2.0.0")
        other = module("github.com/y/b")

        paths = archived_module_paths([archived(v1)], [v1, v2, other])

        assert paths == {"github.com/x/a", "github.com/x/a/v2"}


class TestBuildTree:
    """Test per-direct-dependency results."""

    def test_nothing_archived(self, module):
        m = module("github.com/foo/bar")
        entries, _ = build_tree([RepoStatus(module=m)], {"app": ["github.com/foo/bar@v1.0.0"]}, [m])
        assert entries == []

    def test_direct_and_transitive(self, module):
        direct = module("github.com/d/direct", "v1.0.0")
        dead = module("github.com/dead/dep", "v0.1.0", direct=False)
        gone = module("github.com/gone/lib", "v2.0.0")
        clean = module("github.com/ok/lib", "v1.1.0")
        graph = {
            "example.com/app": [
                "github.com/ok/lib@v1.1.0",
                "github.com/gone/lib@v2.0.0",
                "github.com/d/direct@v1.0.0",
            ],
            "github.com/d/direct@v1.0.0": ["github.com/dead/dep@v0.1.0"],
            "github.com/gone/lib@v2.0.0": ["github.com/gone/lib@v1.0.0"],
            "github.com/ok/lib@v1.1.0": [],
        }
        statuses = [RepoStatus(module=direct), archived(dead), archived(gone), RepoStatus(module=clean)]

        entries, ctx = build_tree(statuses, graph, [direct, dead, gone, clean])

        assert [e.direct_path for e in entries] == ["github.com/d/direct", "github.com/gone/lib"]
        assert entries[0].archived == ["github.com/dead/dep"]
        assert not entries[0].is_archived
        assert entries[0].version == "v1.0.0"
        # a module never lists itself among its archived dependencies
        assert entries[1].is_archived
        assert entries[1].archived == []
        assert ctx.get_status("github.com/dead/dep").module is dead
        assert ctx.get_status("github.com/ok/lib") is None

    def test_version_from_graph_when_unknown(self, module):
        dead = module("github.com/dead/dep", "v0.1.0")
        graph = {"app": ["github.com/other/thing@v3.0.0"], "github.com/other/thing@v3.0.0": ["github.com/dead/dep@v0.1.0"]}

        entries, _ = build_tree([archived(dead)], graph, [dead])

        assert entries[0].direct_path == "github.com/other/thing"
        assert entries[0].version == "v3.0.0"

    def test_empty_graph_fallback(self, module):
        """No graph: one entry per archived repo, sorted, without transitive detail."""
        b = module("github.com/z/b")
        a = module("github.com/a/a")

        entries, _ = build_tree([archived(b), RepoStatus(module=module("github.com/ok/ok")), archived(a)], {}, [a, b])

        assert [(e.direct_path, e.is_archived, e.archived) for e in entries] == [
            ("github.com/a/a", True, []),
            ("github.com/z/b", True, []),
        ]

    def test_deprecated_lookup(self, module):
        dead = module("github.com/dead/dep")
        dead.deprecated = "use something else"

        _, ctx = build_tree([archived(dead)], {}, [dead])

        assert ctx.deprecated_by_path == {"github.com/dead/dep": "use something else"}
