"""Exceptions raised by modrot."""


class ModrotError(Exception):
    """Base class for errors that abort a phase of the run."""


class CredentialError(ModrotError):
    """No GitHub token could be obtained."""


class GitHubAPIError(ModrotError):
    """A GraphQL batch request failed at the transport or envelope level."""


class GoModParseError(ModrotError):
    """A go.mod file could not be read or parsed."""


class ModGraphError(ModrotError):
    """`go mod graph` could not be run."""


class ImportScanError(ModrotError):
    """Source files could not be scanned for imports."""
