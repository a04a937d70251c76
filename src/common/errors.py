"""
Error taxonomy shared by all reports.
Components raise these; only a script's main() catches them, tears down the
VBR session and turns them into a process exit code.
"""

CONNECTION_TEST_HINT = (
    "Run the connection test (python -m src.connection_test.connection_test) "
    "to verify connectivity to the backup server and repository extents."
)


class ReportError(Exception):
    """Base class for fatal report errors."""
    exit_code = 1

    def __init__(self, message: str, hint: str = None):
        super().__init__(message)
        self.message = message
        self.hint = hint


class ConnectivityError(ReportError):
    """Session with the backup server cannot be established."""
    exit_code = 2


class StorageAccessError(ConnectivityError):
    """A storage location cannot be mounted, listed or read."""

    def __init__(self, location: str, reason: str):
        super().__init__(f"Cannot access storage location {location}: {reason}", CONNECTION_TEST_HINT)
        self.location = location


class UnsupportedConfigurationError(ReportError):
    """The platform uses a variant this tool has not been extended for."""
    exit_code = 3


class UnsupportedExtentType(UnsupportedConfigurationError):
    def __init__(self, extent_name: str, raw_type: str):
        super().__init__(
            f"Extent '{extent_name}' has unsupported storage type '{raw_type}' "
            f"(supported: WinLocal, LinuxLocal, CifsShare)"
        )
        self.extent_name = extent_name
        self.raw_type = raw_type


class UnknownRepositoryType(UnsupportedConfigurationError):
    def __init__(self, resource_name: str, repository_id: str):
        super().__init__(
            f"Resource '{resource_name}' references repository {repository_id} "
            f"which is neither a simple nor a scale-out repository"
        )
        self.repository_id = repository_id


class MetadataParseError(ReportError):
    """A backup metadata file is not well-formed."""
    exit_code = 4

    def __init__(self, path: str, reason: str):
        super().__init__(f"Malformed backup metadata {path}: {reason}")
        self.path = path


class FolderNotFoundError(StorageAccessError):
    """The location root is reachable but the requested folder is not on it."""

    def __init__(self, location: str):
        super().__init__(location, "folder does not exist")


class CatalogError(ReportError):
    """A record returned by the backup server does not have the expected shape."""
    exit_code = 5


class ReportOutputError(ReportError):
    """The rendered report cannot be written."""
    exit_code = 6

    def __init__(self, output: str, reason: str):
        super().__init__(f"Cannot write report to {output}: {reason}")
        self.output = output
