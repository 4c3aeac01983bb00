# src/csinstaller/cli.py

import argparse
import importlib.metadata
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from csinstaller import config as config_module
from csinstaller import log_utils
from csinstaller.build_tool import (
    BuildTool,
    default_tool_cache_dir,
    tool_executable_path,
)
from csinstaller.constants import (
    ARDUINO_CLI_NAME,
    EXIT_GENERIC_ERROR,
    EXIT_INTERRUPTED,
    EXIT_SUCCESS,
)
from csinstaller.exceptions import BuildToolError, InstallerError
from csinstaller.menu import select_device
from csinstaller.orchestrator import InstallerOrchestrator


def _add_common_options(parser: argparse.ArgumentParser, default: Any = None) -> None:
    parser.add_argument(
        "--config", default=default, help="Path to a configuration file"
    )
    parser.add_argument(
        "--log-level", default=default, help="Log level (DEBUG, INFO, WARNING, ERROR)"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="csinstaller",
        description="CommandStation-EX installer - download a release and its build tool",
    )
    _add_common_options(parser)
    # Accepted after the subcommand too; SUPPRESS keeps a value given before it
    common = argparse.ArgumentParser(add_help=False)
    _add_common_options(common, default=argparse.SUPPRESS)
    subparsers = parser.add_subparsers(dest="command")

    install_parser = subparsers.add_parser(
        "install",
        help="Select a release and stage it in a build directory (default)",
        parents=[common],
    )
    install_parser.add_argument(
        "--build-dir",
        help="Directory to stage the release in (default: ./yyyyMMdd-HHmmss)",
    )
    install_parser.add_argument(
        "--timeout", type=float, help="Network timeout in seconds"
    )
    install_parser.add_argument(
        "--no-progress",
        dest="show_progress",
        action="store_false",
        default=None,
        help="Do not display download progress bars",
    )

    subparsers.add_parser(
        "devices",
        help=f"List devices connected to this host using {ARDUINO_CLI_NAME}",
        parents=[common],
    )

    upload_parser = subparsers.add_parser(
        "upload",
        help="Upload a compiled sketch to a connected device",
        parents=[common],
    )
    upload_parser.add_argument(
        "--sketch", required=True, help="Sketch directory to upload"
    )
    upload_parser.add_argument("--fqbn", help="Fully qualified board name")
    upload_parser.add_argument(
        "--port", help="Device address; prompts for a device when omitted"
    )

    subparsers.add_parser("version", help="Display the installer version")
    return parser


def _load_config(args: argparse.Namespace) -> Dict[str, Any]:
    config = config_module.load_config(args.config)
    config = config_module.apply_overrides(
        config,
        build_dir=getattr(args, "build_dir", None),
        request_timeout=getattr(args, "timeout", None),
        show_progress=getattr(args, "show_progress", None),
        log_level=args.log_level,
    )
    if config.get("LOG_LEVEL"):
        log_utils.set_log_level(config["LOG_LEVEL"])
    if config.get("LOG_TO_FILE"):
        log_utils.add_file_logging(
            Path(config_module.get_log_dir()), config.get("LOG_LEVEL") or "INFO"
        )
    return config


def _cached_build_tool(config: Dict[str, Any]) -> BuildTool:
    cache_dir = config.get("TOOL_CACHE_DIR") or default_tool_cache_dir()
    tool_path = tool_executable_path(cache_dir)
    if not Path(tool_path).is_file():
        raise BuildToolError(
            f"{ARDUINO_CLI_NAME} not found at {tool_path}",
            details="run 'csinstaller install' first",
        )
    return BuildTool(tool_path, timeout=config.get("TOOL_TIMEOUT"))


def run_install(config: Dict[str, Any]) -> int:
    result = InstallerOrchestrator(config).run()
    return result.exit_code


def run_devices(config: Dict[str, Any]) -> int:
    devices = _cached_build_tool(config).list_devices()
    if not devices:
        print("No connected devices found.")
    for device in devices:
        print(f"{device.label} ({device.fqbn or 'unknown FQBN'})")
    return EXIT_SUCCESS


def run_upload(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    tool = _cached_build_tool(config)
    devices = tool.list_devices()
    if args.port:
        device = next((d for d in devices if d.address == args.port), None)
        if device is None:
            raise BuildToolError("Device not connected", details=args.port)
    else:
        device = select_device(devices)
        if device is None:
            return EXIT_GENERIC_ERROR
    tool.upload(device, args.sketch, fqbn=args.fqbn)
    return EXIT_SUCCESS


def get_version() -> str:
    try:
        return importlib.metadata.version("csinstaller")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def run(argv: Optional[List[str]] = None) -> int:
    """
    Parse arguments, dispatch the subcommand and return the process exit status.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command or "install"

    if command == "version":
        print(f"csinstaller {get_version()}")
        return EXIT_SUCCESS

    try:
        config = _load_config(args)
        if command == "devices":
            return run_devices(config)
        if command == "upload":
            return run_upload(args, config)
        return run_install(config)
    except InstallerError as exc:
        log_utils.logger.error(str(exc))
        return exc.exit_code
    except KeyboardInterrupt:
        log_utils.logger.info("Interrupted")
        return EXIT_INTERRUPTED


def main():
    """Entry point for the csinstaller command-line interface."""
    sys.exit(run())


if __name__ == "__main__":
    main()
