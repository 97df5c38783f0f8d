"""Persistent skip-cache of already synced subtitle paths."""

import logging
from pathlib import Path

from ..config import CacheConfig
from ..models import CacheKind

logger = logging.getLogger(__name__)


class CacheStore:
    """Line-delimited set of synced subtitle paths, one file per media kind.

    The file is rewritten in full on every record so restarts never grow
    duplicate lines. The cache is an optimization: I/O errors are logged and
    the in-memory set keeps advancing.
    """

    def __init__(self, config: CacheConfig):
        self.enabled = config.enabled
        self._files: dict[CacheKind, Path] = {
            CacheKind.MOVIES: Path(config.movies_cache),
            CacheKind.SHOWS: Path(config.shows_cache),
        }
        self._entries: dict[CacheKind, set[str]] = {kind: set() for kind in CacheKind}

    def path_for(self, kind: CacheKind) -> Path:
        return self._files[kind]

    def load(self, kind: CacheKind) -> set[str]:
        """(Re)load one cache file into memory. A missing file is an empty cache."""
        if not self.enabled:
            return set()

        path = self._files[kind]
        entries: set[str] = set()
        try:
            # surrogateescape keeps non-UTF-8 filenames byte-for-byte
            with open(path, encoding="utf-8", errors="surrogateescape") as f:
                entries = {line.rstrip("\r\n") for line in f if line.strip()}
        except FileNotFoundError:
            logger.debug("No %s cache at %s yet", kind.value, path)
        except (OSError, ValueError) as e:
            logger.error("Error opening %s cache file %s: %s", kind.value, path, e)

        # Keep anything recorded earlier in this process
        self._entries[kind] |= entries
        logger.debug("Loaded %d %s cache entries", len(self._entries[kind]), kind.value)
        return set(self._entries[kind])

    def load_all(self) -> None:
        for kind in CacheKind:
            self.load(kind)

    def contains(self, kind: CacheKind, path: str) -> bool:
        return self.enabled and path in self._entries[kind]

    def record(self, kind: CacheKind, path: str) -> None:
        """Remember a synced path and flush the whole set to disk."""
        if not self.enabled or not path:
            return

        entries = self._entries[kind]
        entries.add(path)

        target = self._files[kind]
        data = bytearray()
        for entry in sorted(entries):
            try:
                data += entry.encode("utf-8", "surrogateescape") + b"\n"
            except UnicodeEncodeError:
                logger.warning("Cannot store %r in the %s cache file, keeping it in memory only", entry, kind.value)

        try:
            if target.parent != Path("."):
                target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(bytes(data))
        except OSError as e:
            logger.error("Error writing %s cache file %s: %s", kind.value, target, e)

    def size(self, kind: CacheKind) -> int:
        return len(self._entries[kind])
