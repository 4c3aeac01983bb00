"""
Custom exceptions for the CommandStation-EX installer.

Every fatal pipeline failure has its own exception type carrying a distinct
process exit status, so scripted callers can tell failure kinds apart.
"""

from csinstaller.constants import (
    EXIT_ARCHIVE_DOWNLOAD_ERROR,
    EXIT_BUILD_TOOL_ERROR,
    EXIT_CATALOG_FETCH_ERROR,
    EXIT_CONFIGURATION_ERROR,
    EXIT_DEPENDENCY_FETCH_ERROR,
    EXIT_DIRECTORY_CREATION_ERROR,
    EXIT_EXTRACT_ERROR,
    EXIT_GENERIC_ERROR,
    EXIT_RELOCATE_ERROR,
)


class InstallerError(Exception):
    """
    Base exception for all installer errors.

    Attributes:
        message: The primary error message.
        details: Optional additional context about the error.
        exit_code: Process exit status used when this error aborts a run.
        fatal: Whether this error aborts the acquisition pipeline.
    """

    exit_code = EXIT_GENERIC_ERROR
    fatal = True

    def __init__(self, message: str, details: str | None = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class ConfigurationError(InstallerError):
    """Exception raised when the configuration file or a setting is invalid."""

    exit_code = EXIT_CONFIGURATION_ERROR


# =============================================================================
# Catalog Errors
# =============================================================================


class MalformedVersionError(InstallerError):
    """
    Exception raised when a tag does not follow the v<major>.<minor>.<patch>-<channel> form.

    Recoverable: the catalog skips the offending tag and keeps going.
    """

    fatal = False

    def __init__(self, value: str, details: str | None = None) -> None:
        super().__init__(f"Malformed version tag: {value!r}", details)
        self.value = value


class CatalogFetchError(InstallerError):
    """Exception raised when the remote tag list cannot be retrieved."""

    exit_code = EXIT_CATALOG_FETCH_ERROR


# =============================================================================
# Pipeline Errors
# =============================================================================


class FileSystemError(InstallerError):
    """
    Base exception for errors tied to a filesystem path.

    Attributes:
        path: The path that caused the error.
    """

    def __init__(
        self, message: str, path: str | None = None, details: str | None = None
    ) -> None:
        super().__init__(message, details)
        self.path = path


class DirectoryCreationError(FileSystemError):
    """Exception raised when the build directory cannot be created."""

    exit_code = EXIT_DIRECTORY_CREATION_ERROR


class DownloadError(InstallerError):
    """
    Base exception for download failures.

    Attributes:
        url: The URL that was being downloaded.
    """

    def __init__(
        self, message: str, url: str | None = None, details: str | None = None
    ) -> None:
        super().__init__(message, details)
        self.url = url


class DependencyFetchError(DownloadError):
    """Exception raised when the build tool archive cannot be obtained."""

    exit_code = EXIT_DEPENDENCY_FETCH_ERROR


class DependencyExtractError(FileSystemError):
    """
    Exception raised when the build tool archive cannot be unpacked.

    Not fatal: the tool may already be partially usable.
    """

    exit_code = EXIT_DEPENDENCY_FETCH_ERROR
    fatal = False


class ArchiveDownloadError(DownloadError):
    """Exception raised when the release archive cannot be downloaded."""

    exit_code = EXIT_ARCHIVE_DOWNLOAD_ERROR


class ExtractError(FileSystemError):
    """Exception raised when the release archive cannot be extracted."""

    exit_code = EXIT_EXTRACT_ERROR


class RelocateError(FileSystemError):
    """
    Exception raised when the extracted release folder cannot be moved into place.

    Raised separately from ExtractError because the most likely cause is an
    archive whose top-level folder does not match the selected version.
    """

    exit_code = EXIT_RELOCATE_ERROR


# =============================================================================
# Build Tool Errors
# =============================================================================


class BuildToolError(InstallerError):
    """
    Exception raised when the build tool cannot be run or reports a failure.

    Attributes:
        returncode: The tool's exit status, when it ran.
    """

    exit_code = EXIT_BUILD_TOOL_ERROR

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.returncode = returncode
