"""
Slot resolution: decide whether a file slot needs to be (re)fetched.

For a Pending slot a fetch is always requested. For a Complete slot:

1. the recorded file is missing, or lies outside the target directory
   -> fetch into this destination
2. no stored hash -> trusted as-is (re-fetched when strict_cache is on)
3. the file cannot be re-hashed -> trusted as-is (re-fetched when
   strict_cache is on)
4. recomputed hash matches -> skip
5. hash differs -> fetch, the content has drifted

The resolver never mutates stored state; it only expresses fetch intent.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from .errors import InaccessibleFileError, NameExtractionError
from .fetcher import uri_to_filename
from .hashing import hash_file
from .models import Complete, DownloadState, FileFormat, Pending, ValidatedFile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchRequest:
    """Transient intent to download one slot."""
    fmt: FileFormat
    uri: str
    reason: str


class SlotResolver:
    """Per-slot cache-validity decision."""

    def __init__(
        self,
        strict_cache: bool = False,
        hasher: Callable[[Path], str] = hash_file,
    ):
        self.strict_cache = strict_cache
        self.hasher = hasher

    def resolve(
        self,
        fmt: FileFormat,
        state: DownloadState,
        target_dir: Union[str, Path],
    ) -> Optional[FetchRequest]:
        """
        Decide whether ``state`` needs a fetch into ``target_dir``.

        Returns:
            FetchRequest, or None when the slot should be left alone
        """
        if isinstance(state, Pending):
            return FetchRequest(fmt, state.uri, "not yet downloaded")
        if not isinstance(state, Complete):
            raise TypeError(f"Not a download state: {state!r}")

        validated = state.file
        target_dir = Path(target_dir)
        local_path = self._local_path(validated, target_dir)

        if local_path is None or not local_path.is_file():
            return FetchRequest(fmt, validated.uri, "no local file")
        if not _is_within(local_path, target_dir):
            return FetchRequest(fmt, validated.uri, f"local file is outside {target_dir}")

        if validated.hash is None:
            if self.strict_cache:
                return FetchRequest(fmt, validated.uri, "no stored hash")
            logger.warning(
                f"{local_path} was validated but never hashed; trusting it without re-fetching"
            )
            return None

        try:
            current = self.hasher(local_path)
        except InaccessibleFileError as e:
            if self.strict_cache:
                return FetchRequest(fmt, validated.uri, "local file unreadable")
            logger.warning(f"Could not re-hash {local_path} ({e.message}); keeping previous state")
            return None

        if current == validated.hash:
            logger.debug(f"{local_path} is up to date ({current})")
            return None

        logger.info(f"{local_path} has changed since it was validated; it will be re-fetched")
        return FetchRequest(fmt, validated.uri, "content hash changed")

    @staticmethod
    def _local_path(validated: ValidatedFile, target_dir: Path) -> Optional[Path]:
        if validated.local_path is not None:
            return Path(validated.local_path)
        try:
            return target_dir / uri_to_filename(validated.uri)
        except NameExtractionError:
            return None


def _is_within(path: Path, directory: Path) -> bool:
    try:
        path.resolve().relative_to(directory.resolve())
    except ValueError:
        return False
    return True
