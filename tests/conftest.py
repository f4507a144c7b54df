"""Pytest configuration and fixtures."""

import io

import pytest
from rich.console import Console

from modrot.identity import extract_identity
from modrot.models import Module
from modrot.output import OutputOptions, Reporter


def make_module(path: str, version: str = "v1.0.0", direct: bool = True) -> Module:
    """Build a Module with its GitHub identity filled in, as the parser would."""
    identity = extract_identity(path)
    return Module(path=path, version=version, direct=direct, owner=identity.owner, repo=identity.repo)


class CapturedReporter(Reporter):
    """Reporter writing into strings instead of the terminal."""

    def __init__(self, options: OutputOptions | None = None):
        self.out_buffer = io.StringIO()
        self.err_buffer = io.StringIO()
        super().__init__(
            options,
            out=Console(file=self.out_buffer, width=200, highlight=False, color_system=None),
            err=Console(file=self.err_buffer, width=200, highlight=False, color_system=None),
        )

    @property
    def stdout(self) -> str:
        return self.out_buffer.getvalue()

    @property
    def stderr(self) -> str:
        return self.err_buffer.getvalue()


@pytest.fixture
def module():
    """Factory for Modules with their GitHub identity filled in."""
    return make_module


@pytest.fixture
def reporter():
    return CapturedReporter()


@pytest.fixture
def make_reporter():
    """Factory for reporters with custom output options."""
    return CapturedReporter


@pytest.fixture
def sample_gomod():
    """Sample go.mod content for testing."""
    return """module example.com/myapp

go 1.21

require (
	github.com/foo/bar v1.2.3
	github.com/baz/qux v0.1.0 // indirect
	golang.org/x/text v0.14.0
)

require github.com/single/dep v2.0.0
"""


@pytest.fixture
def temp_gomod_file(tmp_path, sample_gomod):
    """Create a temporary go.mod file for testing."""
    gomod = tmp_path / "go.mod"
    gomod.write_text(sample_gomod)
    return gomod
