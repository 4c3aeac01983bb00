"""
Archive extraction helpers.

Both zip and gzip-compressed tar archives are supported. Members that would
land outside the destination directory are refused.
"""

import os
import shutil
import tarfile
import zipfile
from pathlib import Path
from typing import List

from csinstaller.constants import TAR_GZ_EXTENSION, ZIP_EXTENSION
from csinstaller.log_utils import logger


class UnsafeArchiveError(ValueError):
    """Raised when an archive member would escape the extraction directory."""


def is_safe_archive_member(member_name: str) -> bool:
    """
    Determine whether an archive member name is safe to extract.

    Returns:
        `True` if the member name contains no absolute paths, parent-directory
        references, or null bytes, `False` otherwise.
    """
    if (
        not member_name
        or member_name.startswith("/")
        or member_name.startswith("\\")
        or "\x00" in member_name
    ):
        return False
    normalized = os.path.normpath(member_name)
    if os.path.isabs(normalized):
        return False
    if normalized == ".." or normalized.startswith(f"..{os.sep}"):
        return False
    if os.altsep and normalized.startswith(f"..{os.altsep}"):
        return False
    return True


def safe_extract_path(extract_dir: str, member_name: str) -> str:
    """
    Resolve `member_name` inside `extract_dir`, refusing paths that escape it.

    Raises:
        UnsafeArchiveError: If the resolved path is outside `extract_dir`.
    """
    base = os.path.realpath(extract_dir)
    target = os.path.realpath(os.path.join(base, member_name))
    if target != base and not target.startswith(base + os.sep):
        raise UnsafeArchiveError(f"{member_name} resolves outside {extract_dir}")
    return target


def _extract_zip(archive_path: str, extract_dir: str) -> List[Path]:
    extracted: List[Path] = []
    with zipfile.ZipFile(archive_path, "r") as zip_ref:
        for file_info in zip_ref.infolist():
            if not is_safe_archive_member(file_info.filename):
                raise UnsafeArchiveError(
                    f"Unsafe archive member {file_info.filename!r}"
                )
            extract_path = safe_extract_path(extract_dir, file_info.filename)
            if file_info.is_dir():
                os.makedirs(extract_path, exist_ok=True)
                continue
            os.makedirs(os.path.dirname(extract_path), exist_ok=True)
            with zip_ref.open(file_info) as source, open(extract_path, "wb") as target:
                shutil.copyfileobj(source, target)
            # Preserve the executable bit recorded by unix zip tools
            mode = (file_info.external_attr >> 16) & 0o777
            if os.name != "nt" and mode & 0o111:
                os.chmod(extract_path, mode)
            extracted.append(Path(extract_path))
    return extracted


def _extract_tar(archive_path: str, extract_dir: str) -> List[Path]:
    extracted: List[Path] = []
    with tarfile.open(archive_path, "r:*") as tar_ref:
        members = tar_ref.getmembers()
        for member in members:
            if not is_safe_archive_member(member.name) or member.issym() or member.islnk():
                raise UnsafeArchiveError(f"Unsafe archive member {member.name!r}")
            safe_extract_path(extract_dir, member.name)
        for member in members:
            tar_ref.extract(member, extract_dir)
            if member.isfile():
                extracted.append(Path(extract_dir) / member.name)
    return extracted


def extract_archive(archive_path: str, extract_dir: str) -> List[Path]:
    """
    Extract every member of a zip or tar.gz archive into `extract_dir`.

    Parameters:
        archive_path (str): Path to the archive; the format is chosen by extension.
        extract_dir (str): Destination directory, created if missing.

    Returns:
        List[Path]: Paths of the regular files written.

    Raises:
        zipfile.BadZipFile, tarfile.TarError: If the archive is corrupt.
        UnsafeArchiveError: If a member would be written outside `extract_dir`.
        ValueError: If the archive type is not supported.
        OSError: On filesystem errors.
    """
    os.makedirs(extract_dir, exist_ok=True)
    lowered = archive_path.lower()
    if lowered.endswith(ZIP_EXTENSION):
        extracted = _extract_zip(archive_path, extract_dir)
    elif lowered.endswith(TAR_GZ_EXTENSION) or lowered.endswith(".tgz"):
        extracted = _extract_tar(archive_path, extract_dir)
    else:
        raise ValueError(f"Unsupported archive type: {os.path.basename(archive_path)}")
    logger.debug(f"Extracted {len(extracted)} files from {archive_path} to {extract_dir}")
    return extracted


def list_top_level_dirs(directory: str) -> List[str]:
    """Return the sorted names of the immediate subdirectories of `directory`."""
    try:
        return sorted(
            entry.name for entry in os.scandir(directory) if entry.is_dir()
        )
    except OSError:
        return []
