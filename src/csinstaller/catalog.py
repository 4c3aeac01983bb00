"""
Version catalog for CommandStation-EX release tags.

Turns the raw tag records returned by the GitHub refs API into structured
VersionEntry records keyed by their version string.
"""

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Tuple

from csinstaller.constants import VERSION_TAG_PATTERN
from csinstaller.exceptions import MalformedVersionError
from csinstaller.log_utils import logger

VERSION_TAG_RX = re.compile(VERSION_TAG_PATTERN)

Catalog = Mapping[str, "VersionEntry"]


@dataclass(frozen=True)
class VersionEntry:
    """One release tag of the firmware project."""

    raw_ref: str
    """The ref exactly as returned by the API (e.g. 'refs/tags/v4.2.1-Prod')"""

    major: int
    minor: int
    patch: int

    channel: str
    """Release maturity label such as 'Prod' or 'Devel'; unknown labels are kept verbatim"""

    display_name: str
    """The version string shown to the operator (e.g. 'v4.2.1-Prod')"""

    @property
    def version_key(self) -> Tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    @property
    def version_number(self) -> str:
        """The version without its leading 'v', as used in archive folder names."""
        return self.display_name[1:]


def parse_version_entry(raw_ref: str) -> VersionEntry:
    """
    Parse a single tag ref into a VersionEntry.

    The version string is the last path segment of `raw_ref`.

    Raises:
        MalformedVersionError: If the version string does not match
            v<major>.<minor>.<patch>-<channel>.
    """
    version_string = raw_ref.rstrip("/").rsplit("/", 1)[-1]
    match = VERSION_TAG_RX.match(version_string)
    if match is None:
        raise MalformedVersionError(version_string, details=f"ref {raw_ref!r}")
    major, minor, patch, channel = match.groups()
    return VersionEntry(
        raw_ref=raw_ref,
        major=int(major),
        minor=int(minor),
        patch=int(patch),
        channel=channel,
        display_name=version_string,
    )


def parse(tag_records: Iterable[Any]) -> Catalog:
    """
    Build a catalog from raw tag records.

    Each record is expected to be a mapping with a string `ref` field. Records
    that are malformed are logged and skipped; they never abort the catalog.
    When two records share a version string the later one wins.

    Returns:
        Catalog: Read-only mapping of display name to VersionEntry.
    """
    entries = {}
    for record in tag_records:
        raw_ref = record.get("ref") if isinstance(record, Mapping) else None
        if not isinstance(raw_ref, str) or not raw_ref.strip():
            logger.warning(f"Skipping tag record without a ref: {record!r}")
            continue
        try:
            entry = parse_version_entry(raw_ref)
        except MalformedVersionError as e:
            logger.warning(f"Skipping tag: {e}")
            continue
        entries[entry.display_name] = entry

    logger.debug(f"Catalog contains {len(entries)} versions")
    return MappingProxyType(entries)
