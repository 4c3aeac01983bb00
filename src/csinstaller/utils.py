# src/csinstaller/utils.py
import importlib.metadata
import os
import time
import zipfile
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TransferSpeedColumn,
)
from urllib3.util.retry import Retry  # type: ignore

from csinstaller.constants import (
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_CONNECT_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
    GITHUB_API_TIMEOUT,
    GITHUB_TOKEN_ENV_VAR,
    ZIP_EXTENSION,
)
from csinstaller.log_utils import logger

# Cache for the User-Agent string to avoid repeated metadata lookups
_USER_AGENT_CACHE = None


def get_user_agent() -> str:
    """
    Get the User-Agent string used for HTTP requests.

    Returns:
        The string `csinstaller/{version}`, where `{version}` is the installed package
        version or `unknown` if the version cannot be determined.
    """
    global _USER_AGENT_CACHE

    if _USER_AGENT_CACHE is None:
        try:
            app_version = importlib.metadata.version("csinstaller")
        except importlib.metadata.PackageNotFoundError:
            app_version = "unknown"

        _USER_AGENT_CACHE = f"csinstaller/{app_version}"

    return _USER_AGENT_CACHE


def get_effective_github_token(
    github_token: Optional[str], allow_env_token: bool = True
) -> Optional[str]:
    """
    Return the GitHub token to use, preferring an explicit one over GITHUB_TOKEN.

    Whitespace-only tokens are treated as absent.
    """
    token = (github_token or "").strip()
    if not token and allow_env_token:
        token = os.environ.get(GITHUB_TOKEN_ENV_VAR, "").strip()
    return token or None


def create_session(
    retries: int = DEFAULT_CONNECT_RETRIES,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
) -> requests.Session:
    """
    Create a requests Session whose adapters apply a urllib3 retry policy.

    With `retries=0` every request is attempted exactly once.
    """
    session = requests.Session()
    retry_strategy: Retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        status=retries,
        backoff_factor=backoff_factor,
        status_forcelist=[408, 429, 500, 502, 503, 504],
        allowed_methods=frozenset({"GET", "HEAD"}),
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def make_github_api_request(
    url: str,
    github_token: Optional[str] = None,
    allow_env_token: bool = True,
    params: Optional[Dict[str, Any]] = None,
    timeout: Optional[float] = None,
    session: Optional[requests.Session] = None,
) -> requests.Response:
    """
    Perform a GitHub API GET request with optional token authentication.

    Parameters:
        url (str): GitHub API URL to request.
        github_token (Optional[str]): Explicit GitHub token to prefer for Authorization.
        allow_env_token (bool): Allow falling back to the GITHUB_TOKEN environment variable.
        params (Optional[Dict[str, Any]]): Query parameters to include in the request.
        timeout (Optional[float]): Request timeout in seconds; the module default is used when omitted.
        session (Optional[requests.Session]): Session to issue the request on; plain
            `requests.get` is used when omitted.

    Returns:
        requests.Response: The HTTP response returned by GitHub.

    Raises:
        requests.HTTPError: For HTTP error responses; 403 responses with an exhausted
            rate limit carry a descriptive message.
        requests.RequestException: For lower-level network or request errors.
    """
    headers = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
        "User-Agent": get_user_agent(),
    }

    effective_token = get_effective_github_token(github_token, allow_env_token)
    if effective_token:
        headers["Authorization"] = f"token {effective_token}"
        logger.debug("Using GitHub token for API authentication")

    actual_timeout = timeout or GITHUB_API_TIMEOUT
    logger.debug(f"Making GitHub API request: {url}")
    getter = session.get if session is not None else requests.get
    response = getter(url, timeout=actual_timeout, headers=headers, params=params)
    try:
        response.raise_for_status()
    except requests.HTTPError as e:
        if e.response is not None and e.response.status_code == 403:
            remaining = e.response.headers.get("X-RateLimit-Remaining")
            if remaining == "0":
                error_msg = (
                    "GitHub API rate limit exceeded. "
                    f"Set {GITHUB_TOKEN_ENV_VAR} for higher rate limits."
                )
            else:
                error_msg = "GitHub API access forbidden"
            raise requests.HTTPError(error_msg, response=e.response) from None
        raise

    remaining = response.headers.get("X-RateLimit-Remaining")
    if remaining is not None:
        logger.debug(f"GitHub API rate-limit remaining: {remaining}")
    return response


def _remove_quietly(path: str) -> None:
    if os.path.exists(path):
        try:
            os.remove(path)
        except OSError as e:
            logger.warning(f"Error removing temporary file {path}: {e}")


def download_file(
    url: str,
    download_path: str,
    timeout: Optional[float] = DEFAULT_REQUEST_TIMEOUT,
    session: Optional[requests.Session] = None,
    show_progress: bool = False,
) -> bool:
    """
    Download a remote file to disk and atomically install it.

    Streams the URL to a temporary file next to `download_path`, validates ZIP
    archives, then replaces the destination with `os.replace`. An existing file at
    the destination is overwritten. The temporary file is removed on failure.

    Parameters:
        url (str): The HTTP(S) URL of the remote file to download.
        download_path (str): Final filesystem path for the downloaded file.
        timeout (Optional[float]): Connect/read timeout in seconds.
        session (Optional[requests.Session]): Session to use; a fresh one without
            retries is created (and closed) when omitted.
        show_progress (bool): Render a rich progress bar while downloading.

    Returns:
        bool: `True` if the file was downloaded and installed, `False` otherwise.
    """
    temp_path = f"{download_path}.tmp.{os.getpid()}.{int(time.time() * 1000)}"
    own_session = session is None
    if session is None:
        session = create_session()
    response = None
    try:
        logger.debug(f"Downloading {url} to temp path {temp_path}")
        start_time = time.time()
        response = session.get(
            url,
            stream=True,
            timeout=timeout,
            headers={"User-Agent": get_user_agent()},
        )
        logger.debug(f"Received HTTP status {response.status_code} for {url}")
        response.raise_for_status()

        parent_dir = os.path.dirname(download_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        total = int(response.headers.get("Content-Length") or 0) or None
        downloaded_bytes = 0
        with open(temp_path, "wb") as file:
            if show_progress:
                with Progress(
                    TextColumn("{task.description}"),
                    BarColumn(),
                    DownloadColumn(),
                    TransferSpeedColumn(),
                    transient=True,
                ) as progress:
                    task = progress.add_task(os.path.basename(download_path), total=total)
                    for chunk in response.iter_content(chunk_size=DEFAULT_CHUNK_SIZE):
                        if chunk:
                            file.write(chunk)
                            downloaded_bytes += len(chunk)
                            progress.update(task, advance=len(chunk))
            else:
                for chunk in response.iter_content(chunk_size=DEFAULT_CHUNK_SIZE):
                    if chunk:
                        file.write(chunk)
                        downloaded_bytes += len(chunk)

        logger.debug(
            "Download of %s finished in %.2fs", url, time.time() - start_time
        )

        if download_path.lower().endswith(ZIP_EXTENSION):
            try:
                with zipfile.ZipFile(temp_path, "r") as zf_temp:
                    if zf_temp.testzip() is not None:
                        raise zipfile.BadZipFile(
                            "Downloaded zip file integrity check failed (testzip)."
                        )
            except zipfile.BadZipFile as e_zip_bad:
                logger.error(f"Downloaded zip file {url} is corrupted: {e_zip_bad}")
                return False

        os.replace(temp_path, download_path)

        file_size_mb = downloaded_bytes / (1024 * 1024)
        if file_size_mb >= 1.0:
            logger.info(
                f"Downloaded: {os.path.basename(download_path)} ({file_size_mb:.1f} MB)"
            )
        else:
            logger.info(
                f"Downloaded: {os.path.basename(download_path)} ({downloaded_bytes} bytes)"
            )
        return True

    except requests.exceptions.RequestException as e_req:
        logger.error(f"Network error downloading {url}: {e_req}")
    except OSError as e_io:
        logger.error(
            f"File I/O error during download of {url} (temp path: {temp_path}): {e_io}"
        )
    finally:
        _remove_quietly(temp_path)
        if response is not None:
            response.close()
        if own_session:
            session.close()
    return False
