"""Tests for vanity import resolution."""

import httpx
import pytest

from modrot.enrich import resolve_vanity_imports
from modrot.models import RepoIdentity
from modrot.proxy import ProxyClient
from modrot.resolve import VanityResolver, identity_from_meta, parse_meta_tags


def make_resolver(handler) -> VanityResolver:
    transport = httpx.MockTransport(handler)
    proxy = ProxyClient(base_url="https://proxy.test", transport=transport)
    return VanityResolver(proxy=proxy, transport=transport)


def meta_page(*tags: str) -> str:
    return "<html><head>" + "".join(tags) + "</head><body>Nothing to see here.</body></html>"


class TestParseMetaTags:
    """Test go-import / go-source extraction from HTML."""

    def test_name_before_content(self):
        body = meta_page(
            '<meta name="go-import" content="gopkg.in/yaml.v3 git https://github.com/go-yaml/yaml">',
            '<meta name="go-source" content="gopkg.in/yaml.v3 _ https://github.com/go-yaml/yaml/tree/v3{/dir}">',
        )
        go_import, go_source = parse_meta_tags(body)

        assert go_import == "gopkg.in/yaml.v3 git https://github.com/go-yaml/yaml"
        assert go_source.startswith("gopkg.in/yaml.v3 _ ")

    def test_content_before_name(self):
        """Attribute order must not matter."""
        normal = meta_page('<meta name="go-import" content="a.example/x git https://github.com/o/r">')
        reversed_ = meta_page('<meta content="a.example/x git https://github.com/o/r" name="go-import">')

        assert parse_meta_tags(normal) == parse_meta_tags(reversed_)

    def test_first_tag_wins(self):
        body = meta_page(
            '<meta name="go-import" content="first git https://github.com/a/first">',
            '<meta name="go-import" content="second git https://github.com/a/second">',
        )
        assert parse_meta_tags(body)[0] == "first git https://github.com/a/first"

    def test_case_insensitive_and_single_quotes(self):
        body = "<META NAME='go-import' CONTENT='x.example/y git https://github.com/o/r' />"
        assert parse_meta_tags(body) == ("x.example/y git https://github.com/o/r", "")

    def test_no_tags(self):
        assert parse_meta_tags("<html><meta charset='utf-8'></html>") == ("", "")


class TestIdentityFromMeta:
    def test_go_import_github(self):
        assert identity_from_meta("x.example/y git https://github.com/o/r.git", "") == RepoIdentity("o", "r")

    def test_falls_back_to_go_source(self):
        """Self-referential go-import: the GitHub repo only shows up in go-source."""
        identity = identity_from_meta(
            "vanity.example/pkg git https://vanity.example/pkg",
            "vanity.example/pkg https://github.com/owner/repo https://github.com/owner/repo/tree{/dir} "
            "https://github.com/owner/repo/blob{/dir}/{file}#L{line}",
        )
        assert identity == RepoIdentity("owner", "repo")

    def test_no_github_anywhere(self):
        assert not identity_from_meta(
            "go.uber.org/zap git https://go.googlesource.com/zap", "go.uber.org/zap _ https://example.com/zap"
        )

    def test_short_go_import(self):
        assert not identity_from_meta("only two", "")


class TestVanityResolver:
    """Test the two-stage resolution."""

    @pytest.mark.asyncio
    async def test_proxy_origin_short_circuits(self):
        """A GitHub Origin URL from the proxy means no meta-tag request is made."""
        hosts = []

        def handler(request: httpx.Request) -> httpx.Response:
            hosts.append(request.url.host)
            if request.url.host == "proxy.test":
                return httpx.Response(
                    200, json={"Version": "v1.0.0", "Origin": {"VCS": "git", "URL": "https://github.com/owner/repo"}}
                )
            raise AssertionError("meta tags should not be fetched")

        async with make_resolver(handler) as resolver:
            identity = await resolver.resolve_one("vanity.example/pkg")

        assert identity == RepoIdentity("owner", "repo")
        assert hosts == ["proxy.test"]

    @pytest.mark.asyncio
    async def test_falls_back_to_meta_tags(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(str(request.url))
            if request.url.host == "proxy.test":
                return httpx.Response(404)
            return httpx.Response(
                200,
                text=meta_page(
                    '<meta name="go-import" content="vanity.example/pkg git https://vanity.example/pkg">',
                    '<meta name="go-source" content="vanity.example/pkg https://github.com/owner/repo '
                    'https://github.com/owner/repo/tree{/dir} https://github.com/owner/repo/blob{/dir}/{file}#L{line}">',
                ),
            )

        async with make_resolver(handler) as resolver:
            identity = await resolver.resolve_one("vanity.example/pkg")

        assert identity == RepoIdentity("owner", "repo")
        assert requests[-1] == "https://vanity.example/pkg?go-get=1"

    @pytest.mark.asyncio
    async def test_non_github_origin_falls_through(self):
        """An Origin on another host yields nothing from the proxy stage."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "proxy.test":
                return httpx.Response(200, json={"Version": "v1", "Origin": {"URL": "https://go.googlesource.com/text"}})
            return httpx.Response(
                200, text=meta_page('<meta name="go-import" content="golang.org/x/text git https://go.googlesource.com/text">')
            )

        async with make_resolver(handler) as resolver:
            assert not await resolver.resolve_one("golang.org/x/text")

    @pytest.mark.asyncio
    async def test_everything_fails(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "proxy.test":
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(500)

        async with make_resolver(handler) as resolver:
            assert await resolver.resolve_one("vanity.example/pkg") == RepoIdentity()

    @pytest.mark.asyncio
    async def test_meta_timeout_is_empty(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "proxy.test":
                return httpx.Response(404)
            raise httpx.ReadTimeout("slow", request=request)

        async with make_resolver(handler) as resolver:
            assert not await resolver.resolve_via_meta("vanity.example/pkg")


class TestResolveModules:
    """Test resolution of several modules through the proxy."""

    @pytest.mark.asyncio
    async def test_malformed_origin_only_blanks_its_module(self, module):
        """A non-string Origin URL for one module leaves the other resolved."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "proxy.test":
                if request.url.path.startswith("/good.example/"):
                    return httpx.Response(200, json={"Version": "v1", "Origin": {"URL": "https://github.com/o/a"}})
                return httpx.Response(200, json={"Version": "v1", "Origin": {"URL": 5}})
            return httpx.Response(404)

        modules = [module("good.example/a"), module("bad.example/b")]
        async with make_resolver(handler) as resolver:
            resolved = await resolve_vanity_imports(modules, resolver)

        assert resolved == 1
        assert (modules[0].owner, modules[0].repo) == ("o", "a")
        assert modules[1].owner == ""
