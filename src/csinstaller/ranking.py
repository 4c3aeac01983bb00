"""
Channel-aware ranking of catalog entries into an operator candidate list.
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from csinstaller.catalog import Catalog, VersionEntry
from csinstaller.constants import DEFAULT_CHANNEL_LIMITS, SENTINEL_LABEL


@dataclass(frozen=True)
class Candidate:
    """A numbered choice offered to the operator."""

    index: int
    entry: Optional[VersionEntry]
    """The release behind this choice; None for the exit sentinel"""

    @property
    def is_sentinel(self) -> bool:
        return self.entry is None

    @property
    def label(self) -> str:
        return SENTINEL_LABEL if self.entry is None else self.entry.display_name


CandidateList = List[Candidate]


def rank(
    catalog: Catalog, channel_limits: Optional[Mapping[str, int]] = None
) -> CandidateList:
    """
    Select the newest entries of each configured channel.

    Entries are sorted newest first by (major, minor, patch); the sort is stable so
    equal versions keep catalog order. Walking that order, an entry is included
    while its channel's running count is below the channel's limit. Channels
    without a limit are counted but never included. A sentinel candidate is
    always appended, so the result is never empty.

    Parameters:
        catalog (Catalog): Parsed versions.
        channel_limits (Mapping[str, int] | None): Per-channel inclusion limits;
            defaults to two each for Prod and Devel.

    Returns:
        CandidateList: Candidates numbered from 1, ending with the sentinel.
    """
    limits = DEFAULT_CHANNEL_LIMITS if channel_limits is None else channel_limits
    ordered = sorted(catalog.values(), key=lambda e: e.version_key, reverse=True)

    seen: Dict[str, int] = {}
    candidates: CandidateList = []
    for entry in ordered:
        count = seen.get(entry.channel, 0)
        limit = limits.get(entry.channel)
        if limit is not None and count < limit:
            candidates.append(Candidate(index=len(candidates) + 1, entry=entry))
        seen[entry.channel] = count + 1

    candidates.append(Candidate(index=len(candidates) + 1, entry=None))
    return candidates
