"""
Acquisition pipeline.

A fixed sequence of idempotent steps that stages a CommandStation-EX release
into a build directory:

    IDLE -> DIRECTORY_READY -> TOOL_READY -> CATALOG_FETCHED
         -> ARCHIVE_DOWNLOADED -> EXTRACTED -> INSTALLED

The first fatal error moves the pipeline to FAILED and is raised to the
caller. Completed steps are left on disk; re-running skips work that is
already done.
"""

import os
import tarfile
import zipfile
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

import requests

from csinstaller.archives import extract_archive, list_top_level_dirs
from csinstaller.build_tool import (
    default_tool_cache_dir,
    host_architecture,
    resolve_tool_archive_url,
    tool_executable_path,
)
from csinstaller.catalog import Catalog, VersionEntry, parse
from csinstaller.constants import (
    ARCHIVE_FILE_NAME,
    ARDUINO_CLI_NAME,
    CANONICAL_DIR_NAME,
    EXECUTABLE_PERMISSIONS,
)
from csinstaller.exceptions import (
    ArchiveDownloadError,
    DependencyExtractError,
    DependencyFetchError,
    DirectoryCreationError,
    ExtractError,
    InstallerError,
    RelocateError,
)
from csinstaller.github_source import GithubTagSource
from csinstaller.log_utils import logger
from csinstaller.menu import prompt_for_selection
from csinstaller.ranking import Candidate, rank
from csinstaller.utils import download_file

ARCHIVE_ERRORS = (zipfile.BadZipFile, tarfile.TarError, ValueError, OSError)

Selector = Callable[[Sequence[Candidate]], Candidate]


class PipelineState(Enum):
    IDLE = "idle"
    DIRECTORY_READY = "directory_ready"
    TOOL_READY = "tool_ready"
    CATALOG_FETCHED = "catalog_fetched"
    ARCHIVE_DOWNLOADED = "archive_downloaded"
    EXTRACTED = "extracted"
    INSTALLED = "installed"
    FAILED = "failed"


@dataclass
class PipelineContext:
    """Paths produced and consumed by the pipeline steps."""

    build_directory: str
    dependency_tool_path: Optional[str] = None
    staging_archive_path: Optional[str] = None
    final_install_directory: Optional[str] = None


@dataclass
class PipelineResult:
    """Outcome of a pipeline run that did not fail."""

    state: PipelineState
    context: PipelineContext
    entry: Optional[VersionEntry] = None
    cancelled: bool = False


class AcquisitionPipeline:
    """
    Runs the acquisition steps in order against a single PipelineContext.

    Collaborators are passed in explicitly: the tag source, the selector used to
    ask the operator for a version, and the HTTP session for downloads.
    """

    def __init__(
        self,
        context: PipelineContext,
        config: Dict[str, Any],
        tag_source: GithubTagSource,
        selector: Selector = prompt_for_selection,
        session: Optional[requests.Session] = None,
        host: Optional[Tuple[str, str]] = None,
    ):
        self.context = context
        self.config = config
        self.tag_source = tag_source
        self.selector = selector
        self.session = session
        self.host = host or host_architecture()
        self.tool_cache_dir = config.get("TOOL_CACHE_DIR") or default_tool_cache_dir()
        self.state = PipelineState.IDLE

    def _download(self, url: str, path: str) -> bool:
        return download_file(
            url,
            path,
            timeout=self.config.get("REQUEST_TIMEOUT"),
            session=self.session,
            show_progress=bool(self.config.get("SHOW_PROGRESS")),
        )

    def ensure_build_directory(self) -> None:
        """Create the build directory unless it already exists."""
        build_dir = self.context.build_directory
        if os.path.isdir(build_dir):
            logger.debug(f"Build directory {build_dir} already exists")
        else:
            try:
                os.makedirs(build_dir, exist_ok=True)
            except OSError as exc:
                raise DirectoryCreationError(
                    "Could not create build directory", path=build_dir, details=str(exc)
                ) from exc
            logger.info(f"Created build directory {build_dir}")
        self.state = PipelineState.DIRECTORY_READY

    def ensure_dependency_tool(self) -> None:
        """
        Make sure the build tool executable is present in its cache directory.

        An existing executable is reused. Otherwise the archive for this host is
        downloaded and unpacked; an unpacking failure is logged and tolerated.
        """
        tool_path = tool_executable_path(self.tool_cache_dir, self.host[0])
        self.context.dependency_tool_path = tool_path
        if os.path.isfile(tool_path):
            logger.info(f"Using cached {ARDUINO_CLI_NAME} at {tool_path}")
            self.state = PipelineState.TOOL_READY
            return

        url = resolve_tool_archive_url(self.host)
        try:
            os.makedirs(self.tool_cache_dir, exist_ok=True)
        except OSError as exc:
            raise DependencyFetchError(
                f"Could not create {ARDUINO_CLI_NAME} cache directory",
                url=url,
                details=str(exc),
            ) from exc

        archive_path = os.path.join(self.tool_cache_dir, url.rsplit("/", 1)[-1])
        logger.info(f"Downloading {ARDUINO_CLI_NAME} from {url}")
        if not self._download(url, archive_path):
            raise DependencyFetchError(f"Could not download {ARDUINO_CLI_NAME}", url=url)

        try:
            self._unpack_tool(archive_path, tool_path)
        except InstallerError as exc:
            if exc.fatal:
                raise
            logger.warning(f"{exc}; continuing")
        self.state = PipelineState.TOOL_READY

    def _unpack_tool(self, archive_path: str, tool_path: str) -> None:
        try:
            extract_archive(archive_path, self.tool_cache_dir)
        except ARCHIVE_ERRORS as exc:
            raise DependencyExtractError(
                f"Could not unpack {ARDUINO_CLI_NAME}", path=archive_path, details=str(exc)
            ) from exc
        if os.name == "nt" or not os.path.isfile(tool_path):
            return
        try:
            os.chmod(tool_path, EXECUTABLE_PERMISSIONS)
        except OSError as exc:
            raise DependencyExtractError(
                f"Could not mark {ARDUINO_CLI_NAME} executable", path=tool_path, details=str(exc)
            ) from exc

    def fetch_catalog(self) -> Catalog:
        """Retrieve and parse the remote tag list."""
        catalog = parse(self.tag_source.list_tags())
        self.state = PipelineState.CATALOG_FETCHED
        return catalog

    def present_and_select(self, catalog: Catalog) -> Optional[VersionEntry]:
        """
        Rank the catalog and ask the operator to pick a version.

        Returns:
            VersionEntry | None: The chosen release, or None if the operator chose to exit.
        """
        candidates = rank(catalog, self.config.get("CHANNEL_LIMITS"))
        chosen = self.selector(candidates)
        if chosen.is_sentinel:
            logger.info("Installation cancelled")
            self.state = PipelineState.IDLE
            return None
        logger.info(f"Selected {chosen.entry.display_name}")
        return chosen.entry

    def _install_target(self) -> str:
        target = os.path.join(self.context.build_directory, CANONICAL_DIR_NAME)
        if os.path.exists(target):
            raise RelocateError("Install directory already exists", path=target)
        return target

    def download_archive(self, entry: VersionEntry) -> None:
        """
        Download the release archive into the build directory.

        Refuses to start when the build directory already holds an install.
        """
        self._install_target()
        url = self.tag_source.archive_url(entry.raw_ref)
        archive_path = os.path.join(self.context.build_directory, ARCHIVE_FILE_NAME)
        self.context.staging_archive_path = archive_path
        if not self._download(url, archive_path):
            raise ArchiveDownloadError(
                f"Could not download {entry.display_name}", url=url
            )
        self.state = PipelineState.ARCHIVE_DOWNLOADED

    def extract_and_relocate(self, entry: VersionEntry) -> None:
        """
        Extract the release archive and rename its folder to the canonical name.

        The archive's top-level folder must be CommandStation-EX-<version>; any
        other layout raises RelocateError and leaves the extracted files in place.
        """
        build_dir = self.context.build_directory
        archive_path = self.context.staging_archive_path or os.path.join(
            build_dir, ARCHIVE_FILE_NAME
        )
        try:
            extract_archive(archive_path, build_dir)
        except ARCHIVE_ERRORS as exc:
            raise ExtractError(
                "Could not extract release archive", path=archive_path, details=str(exc)
            ) from exc
        self.state = PipelineState.EXTRACTED

        source = os.path.join(build_dir, f"{CANONICAL_DIR_NAME}-{entry.version_number}")
        if not os.path.isdir(source):
            found = ", ".join(list_top_level_dirs(build_dir)) or "nothing"
            raise RelocateError(
                f"Expected folder {os.path.basename(source)} not found in archive",
                path=source,
                details=f"found: {found}",
            )
        target = self._install_target()
        try:
            os.rename(source, target)
        except OSError as exc:
            raise RelocateError(
                "Could not rename extracted folder", path=source, details=str(exc)
            ) from exc

        self.context.final_install_directory = target
        self.state = PipelineState.INSTALLED
        logger.info(f"{entry.display_name} installed in {target}")

    def run(self) -> PipelineResult:
        """
        Run every step in order.

        Returns:
            PipelineResult: INSTALLED on success, or IDLE with `cancelled` set when
            the operator chose to exit.

        Raises:
            InstallerError: The first fatal error; the pipeline state is FAILED.
        """
        try:
            self.ensure_build_directory()
            self.ensure_dependency_tool()
            catalog = self.fetch_catalog()
            entry = self.present_and_select(catalog)
            if entry is None:
                return PipelineResult(self.state, self.context, cancelled=True)
            self.download_archive(entry)
            self.extract_and_relocate(entry)
        except InstallerError:
            self.state = PipelineState.FAILED
            raise
        return PipelineResult(self.state, self.context, entry=entry)
