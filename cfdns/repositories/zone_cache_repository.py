"""
cfdns/repositories/zone_cache_repository.py

Responsibility: Loads and saves the zone name -> zone id map as a flat JSON
document in the per-user cache directory.
Does NOT: look zones up, lock, or decide when to save.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

APPLICATION = "cfdns"
ZONE_CACHE_NAME = "zones"


def default_cache_dir() -> Path:
    """
    Returns the cache directory: $CFDNS_CACHE_DIR, else $XDG_CACHE_HOME/cfdns,
    else ~/.cache/cfdns.
    """
    override = os.getenv("CFDNS_CACHE_DIR")
    if override:
        return Path(override)
    xdg = os.getenv("XDG_CACHE_HOME")
    base = Path(xdg) if xdg else Path.home() / ".cache"
    return base / APPLICATION


class ZoneCacheRepository:
    """
    Reads and writes the zone cache file wholesale.

    A missing file is an empty cache. A file that is not a JSON object of
    strings is treated as empty with a warning, and is overwritten on the
    next save.
    """

    def __init__(self, path: Path | None = None) -> None:
        """
        Args:
            path: Location of the JSON file. Defaults to zones.json in
                  default_cache_dir().
        """
        self._path = path or default_cache_dir() / f"{ZONE_CACHE_NAME}.json"

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, str]:
        """
        Returns the persisted zone map.

        Returns:
            A dict mapping zone names to zone ids; empty when the file is
            absent or corrupt.
        """
        if not self._path.exists():
            logger.debug("No zone cache at %s; starting empty.", self._path)
            return {}

        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("%s cache file was invalid, overwriting: %s", ZONE_CACHE_NAME, exc)
            return {}

        if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            logger.warning(
                "%s cache file %s is not a string map, overwriting.", ZONE_CACHE_NAME, self._path
            )
            return {}

        logger.info("Loaded %d cached zone id(s) from %s.", len(data), self._path)
        return data

    def save(self, zones: dict[str, str]) -> None:
        """
        Atomically replaces the cache file with the given map.

        Args:
            zones: The complete zone map to persist.

        Raises:
            OSError: If the directory or file cannot be written.
        """
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(dir=directory, prefix=f"{ZONE_CACHE_NAME}_", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(zones, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self._path)
        except BaseException:
            Path(temp_path).unlink(missing_ok=True)
            raise

        logger.debug("Saved %d zone id(s) to %s.", len(zones), self._path)

    def clear(self) -> bool:
        """
        Deletes the cache file.

        Returns:
            True if a file was deleted, False if there was none.
        """
        try:
            self._path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Deleted zone cache %s.", self._path)
        return True
