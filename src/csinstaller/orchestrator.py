"""
Top-level driver for an installation run.

Builds the pipeline and its collaborators from the configuration, reports a
single message for any fatal failure and turns the outcome into a process
exit status.
"""

import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from csinstaller.build_tool import BuildTool, Device, host_architecture
from csinstaller.constants import (
    ARDUINO_CLI_NAME,
    BUILD_DIR_TIMESTAMP_FORMAT,
    EXIT_SUCCESS,
)
from csinstaller.exceptions import (
    ArchiveDownloadError,
    BuildToolError,
    CatalogFetchError,
    DependencyFetchError,
    DirectoryCreationError,
    ExtractError,
    InstallerError,
    RelocateError,
)
from csinstaller.github_source import GithubTagSource
from csinstaller.log_utils import logger
from csinstaller.menu import prompt_for_selection
from csinstaller.pipeline import (
    AcquisitionPipeline,
    PipelineContext,
    PipelineResult,
    Selector,
)
from csinstaller.utils import create_session

FAILURE_MESSAGES = {
    DirectoryCreationError: "Unable to create the build directory",
    DependencyFetchError: f"Unable to download {ARDUINO_CLI_NAME}",
    CatalogFetchError: "Unable to retrieve the list of CommandStation-EX versions",
    ArchiveDownloadError: "Unable to download the selected CommandStation-EX version",
    ExtractError: "Unable to extract the CommandStation-EX archive",
    RelocateError: "Unable to move CommandStation-EX into place",
}


def default_build_directory(now: Optional[datetime] = None) -> str:
    """Return ./yyyyMMdd-HHmmss relative to the current working directory."""
    stamp = (now or datetime.now()).strftime(BUILD_DIR_TIMESTAMP_FORMAT)
    return os.path.join(os.getcwd(), stamp)


def describe_failure(error: InstallerError) -> str:
    """Return the operator-facing message for a fatal error."""
    for error_type, message in FAILURE_MESSAGES.items():
        if isinstance(error, error_type):
            return f"{message}: {error}"
    return str(error)


@dataclass
class InstallResult:
    """What an installation run produced, and the exit status it maps to."""

    exit_code: int
    pipeline: Optional[PipelineResult] = None
    devices: List[Device] = field(default_factory=list)
    error: Optional[InstallerError] = None

    @property
    def cancelled(self) -> bool:
        return self.pipeline is not None and self.pipeline.cancelled


class InstallerOrchestrator:
    """Composes the acquisition pipeline and owns the failure policy."""

    def __init__(
        self,
        config: Dict[str, Any],
        build_directory: Optional[str] = None,
        selector: Selector = prompt_for_selection,
        session: Optional[requests.Session] = None,
        tag_source: Optional[GithubTagSource] = None,
        build_tool_factory: Callable[..., BuildTool] = BuildTool,
        host: Optional[Tuple[str, str]] = None,
    ):
        self.config = config
        self.build_directory = (
            build_directory or config.get("BUILD_DIR") or default_build_directory()
        )
        self.selector = selector
        self._owns_session = session is None
        self.session = session or create_session(
            retries=config.get("CONNECT_RETRIES", 0),
            backoff_factor=config.get("BACKOFF_FACTOR", 0.3),
        )
        self.tag_source = tag_source or GithubTagSource(config, session=self.session)
        self.build_tool_factory = build_tool_factory
        # Resolved once for the whole run
        self.host = host or host_architecture()

    def list_devices(self, tool_path: Optional[str]) -> List[Device]:
        """
        Ask the build tool for connected devices.

        The first call lets the tool provision device drivers on first use; the
        second gives the listing that is returned. Failures are logged only.
        """
        if not tool_path:
            return []
        tool = self.build_tool_factory(tool_path, timeout=self.config.get("TOOL_TIMEOUT"))
        try:
            tool.list_devices()
            devices = tool.list_devices()
        except BuildToolError as exc:
            logger.warning(f"Could not list connected devices: {exc}")
            return []
        for device in devices:
            logger.info(f"Found device: {device.label}")
        if not devices:
            logger.info("No connected devices found")
        return devices

    def run(self) -> InstallResult:
        """
        Run the pipeline and translate its outcome.

        Returns:
            InstallResult: exit status 0 for an install or an operator cancel, the
            error's own exit status for a fatal failure.
        """
        context = PipelineContext(build_directory=self.build_directory)
        pipeline = AcquisitionPipeline(
            context,
            self.config,
            self.tag_source,
            selector=self.selector,
            session=self.session,
            host=self.host,
        )
        try:
            result = pipeline.run()
        except InstallerError as exc:
            logger.error(describe_failure(exc))
            return InstallResult(exit_code=exc.exit_code, error=exc)
        finally:
            if self._owns_session:
                self.session.close()

        if result.cancelled:
            return InstallResult(exit_code=EXIT_SUCCESS, pipeline=result)

        devices = self.list_devices(result.context.dependency_tool_path)
        return InstallResult(exit_code=EXIT_SUCCESS, pipeline=result, devices=devices)
