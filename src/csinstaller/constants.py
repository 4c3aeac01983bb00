"""
Constants and configuration values for the CommandStation-EX installer.

This module contains all hardcoded values, URLs, timeouts, and other constants
used throughout the application.
"""

# GitHub API URLs
GITHUB_API_BASE = "https://api.github.com/repos"
COMMANDSTATION_REPO = "DCC-EX/CommandStation-EX"
COMMANDSTATION_TAGS_URL = f"{GITHUB_API_BASE}/{COMMANDSTATION_REPO}/git/refs/tags"
# Archive URLs are built as <prefix><ref>.zip, e.g. .../archive/refs/tags/v4.2.1-Prod.zip
COMMANDSTATION_ARCHIVE_PREFIX = f"https://github.com/{COMMANDSTATION_REPO}/archive/"

# Build tool (arduino-cli) downloads
ARDUINO_CLI_DOWNLOAD_BASE = "https://downloads.arduino.cc/arduino-cli/"
ARDUINO_CLI_NAME = "arduino-cli"
# Lookup table keyed by (platform.system(), architecture label)
ARDUINO_CLI_ARCHIVES = {
    ("Windows", "32bit"): "arduino-cli_latest_Windows_32bit.zip",
    ("Windows", "64bit"): "arduino-cli_latest_Windows_64bit.zip",
    ("Linux", "32bit"): "arduino-cli_latest_Linux_32bit.tar.gz",
    ("Linux", "64bit"): "arduino-cli_latest_Linux_64bit.tar.gz",
    ("Linux", "ARMv7"): "arduino-cli_latest_Linux_ARMv7.tar.gz",
    ("Linux", "ARM64"): "arduino-cli_latest_Linux_ARM64.tar.gz",
    ("Darwin", "64bit"): "arduino-cli_latest_macOS_64bit.tar.gz",
    ("Darwin", "ARM64"): "arduino-cli_latest_macOS_ARM64.tar.gz",
}
TOOL_CACHE_DIR_NAME = "arduino-cli_installer"

# File and directory names
CANONICAL_DIR_NAME = "CommandStation-EX"
ARCHIVE_FILE_NAME = f"{CANONICAL_DIR_NAME}.zip"
BUILD_DIR_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"

# Version tags look like v4.2.1-Prod
VERSION_TAG_PATTERN = r"^v(\d+)\.(\d+)\.(\d+)-(.+)$"
CHANNEL_PROD = "Prod"
CHANNEL_DEVEL = "Devel"
DEFAULT_CHANNEL_LIMITS = {CHANNEL_PROD: 2, CHANNEL_DEVEL: 2}
SENTINEL_LABEL = "Exit"

# Network settings (in seconds)
GITHUB_API_TIMEOUT = 30
DEFAULT_REQUEST_TIMEOUT = 30
DEFAULT_CONNECT_RETRIES = 0
DEFAULT_BACKOFF_FACTOR = 0.3
DEFAULT_CHUNK_SIZE = 8192
GITHUB_MAX_PER_PAGE = 100

# File extensions
ZIP_EXTENSION = ".zip"
TAR_GZ_EXTENSION = ".tar.gz"
EXECUTABLE_PERMISSIONS = 0o755

# Exit statuses
EXIT_SUCCESS = 0
EXIT_GENERIC_ERROR = 1
EXIT_CONFIGURATION_ERROR = 2
EXIT_DIRECTORY_CREATION_ERROR = 10
EXIT_DEPENDENCY_FETCH_ERROR = 11
EXIT_CATALOG_FETCH_ERROR = 12
EXIT_ARCHIVE_DOWNLOAD_ERROR = 13
EXIT_EXTRACT_ERROR = 14
EXIT_RELOCATE_ERROR = 15
EXIT_BUILD_TOOL_ERROR = 16
EXIT_INTERRUPTED = 130

# Configuration
APP_NAME = "csinstaller"
CONFIG_FILE_NAME = "csinstaller.yaml"

# Logging configuration
LOGGER_NAME = "csinstaller"
LOG_FILE_NAME = "csinstaller.log"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
INFO_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s: %(message)s"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_FILE_BACKUP_COUNT = 5

# Environment variable names
LOG_LEVEL_ENV_VAR = "CSINSTALLER_LOG_LEVEL"
DISABLE_FILE_LOGGING_ENV_VAR = "CSINSTALLER_DISABLE_FILE_LOGGING"
GITHUB_TOKEN_ENV_VAR = "GITHUB_TOKEN"
