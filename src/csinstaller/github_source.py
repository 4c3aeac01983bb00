"""
GitHub Tag Source

Fetches the tag refs of the CommandStation-EX repository and builds archive
download URLs for them.
"""

import json
from typing import Any, Dict, List, Optional

import requests

from csinstaller.constants import (
    COMMANDSTATION_ARCHIVE_PREFIX,
    COMMANDSTATION_TAGS_URL,
    GITHUB_MAX_PER_PAGE,
    ZIP_EXTENSION,
)
from csinstaller.exceptions import CatalogFetchError
from csinstaller.log_utils import logger
from csinstaller.utils import make_github_api_request


class GithubTagSource:
    """
    The remote collaborator exposing "list tags" and "download archive for ref".

    Usage:
        source = GithubTagSource(config=config, session=session)
        records = source.list_tags()
        url = source.archive_url("refs/tags/v4.2.1-Prod")
    """

    def __init__(
        self,
        config: Dict[str, Any],
        session: Optional[requests.Session] = None,
        tags_url: str = COMMANDSTATION_TAGS_URL,
        archive_prefix: str = COMMANDSTATION_ARCHIVE_PREFIX,
    ):
        """
        Parameters:
            config (Dict[str, Any]): Configuration for timeouts and tokens.
            session (Optional[requests.Session]): Session used for API calls.
            tags_url (str): The GitHub refs/tags API URL.
            archive_prefix (str): Prefix that, followed by a ref and `.zip`, gives the archive URL.
        """
        self.config = config
        self.session = session
        self.tags_url = tags_url
        self.archive_prefix = archive_prefix

    def list_tags(self) -> List[Dict[str, Any]]:
        """
        Fetch all tag records, following `Link: rel="next"` pagination.

        Returns:
            List[Dict[str, Any]]: Raw tag objects, each with at least a `ref` field.

        Raises:
            CatalogFetchError: On any network, HTTP, or payload-shape error.
        """
        records: List[Dict[str, Any]] = []
        url: Optional[str] = self.tags_url
        params: Optional[Dict[str, Any]] = {"per_page": GITHUB_MAX_PER_PAGE}
        while url:
            try:
                response = make_github_api_request(
                    url,
                    self.config.get("GITHUB_TOKEN"),
                    allow_env_token=self.config.get("ALLOW_ENV_TOKEN", True),
                    params=params,
                    timeout=self.config.get("REQUEST_TIMEOUT"),
                    session=self.session,
                )
                page = response.json()
            except (requests.RequestException, json.JSONDecodeError, ValueError) as exc:
                raise CatalogFetchError(
                    "Could not retrieve the release list from GitHub", details=str(exc)
                ) from exc

            if isinstance(page, dict):
                # A repository with a single tag yields one object, not a list
                page = [page]
            if not isinstance(page, list):
                raise CatalogFetchError(
                    "Unexpected response from GitHub tag API",
                    details=f"expected a list, got {type(page).__name__}",
                )
            records.extend(page)

            links = getattr(response, "links", None)
            next_link = links.get("next") if isinstance(links, dict) else None
            url = next_link.get("url") if isinstance(next_link, dict) else None
            # The next link already carries the query string
            params = None

        logger.debug(f"Fetched {len(records)} tag records from {self.tags_url}")
        return records

    def archive_url(self, raw_ref: str) -> str:
        """Build the archive download URL for a tag ref."""
        return f"{self.archive_prefix}{raw_ref}{ZIP_EXTENSION}"
