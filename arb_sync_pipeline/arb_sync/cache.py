from __future__ import annotations
import hashlib
import logging
import os
import sqlite3
from contextlib import closing
from dataclasses import dataclass
from typing import Dict, List, Optional

from .errors import CacheCorruptError, WriteError
from .utils import commit_staged, discard, temp_path_for

CACHE_FILE = ".arb_sync_cache.sqlite"

SCHEMA = '''
CREATE TABLE IF NOT EXISTS cache (
  locale TEXT NOT NULL,
  key TEXT NOT NULL,
  source_hash TEXT NOT NULL,
  translated TEXT NOT NULL,
  PRIMARY KEY (locale, key)
);
'''


def source_hash(text: str) -> str:
    # hash of the raw template text, before placeholder locking
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    locale: str
    key: str
    source_hash: str
    translated: str


class CacheStore:
    """
    (locale, key) -> CacheEntry. Loaded once per run, held in memory and
    rewritten as a whole by save(); the on-disk file is a small SQLite database.
    """

    def __init__(self, entries: Optional[Dict[str, Dict[str, CacheEntry]]] = None) -> None:
        self._by_locale: Dict[str, Dict[str, CacheEntry]] = {
            loc: dict(keys) for loc, keys in (entries or {}).items()
        }

    def __len__(self) -> int:
        return sum(len(v) for v in self._by_locale.values())

    def __eq__(self, other: object) -> bool:
        return isinstance(other, CacheStore) and self.all_entries() == other.all_entries()

    @classmethod
    def load(cls, path: str) -> "CacheStore":
        """Empty store when the file does not exist; CacheCorruptError when it is unreadable."""
        if not os.path.exists(path):
            return cls()
        entries: Dict[str, Dict[str, CacheEntry]] = {}
        try:
            with closing(sqlite3.connect(path)) as conn:
                rows = conn.execute("SELECT locale, key, source_hash, translated FROM cache").fetchall()
        except sqlite3.DatabaseError as e:
            raise CacheCorruptError(f"cannot read cache {path}: {e}") from e
        for locale, key, h, translated in rows:
            entries.setdefault(locale, {})[key] = CacheEntry(locale, key, h, translated)
        return cls(entries)

    @classmethod
    def load_or_empty(cls, path: str, logger: Optional[logging.Logger] = None) -> "CacheStore":
        try:
            return cls.load(path)
        except CacheCorruptError as e:
            (logger or logging.getLogger("arb-sync")).warning(f"{e}; starting with an empty cache")
            return cls()

    def lookup(self, locale: str, key: str) -> Optional[CacheEntry]:
        return self._by_locale.get(locale, {}).get(key)

    def put(self, locale: str, key: str, source_hash: str, translated: str) -> None:
        self._by_locale.setdefault(locale, {})[key] = CacheEntry(locale, key, source_hash, translated)

    def remove(self, locale: str, key: str) -> Optional[CacheEntry]:
        bucket = self._by_locale.get(locale)
        if not bucket:
            return None
        entry = bucket.pop(key, None)
        if not bucket:
            del self._by_locale[locale]
        return entry

    def entries_for(self, locale: str) -> Dict[str, CacheEntry]:
        return dict(self._by_locale.get(locale, {}))

    def locales(self) -> List[str]:
        return sorted(self._by_locale)

    def all_entries(self) -> List[CacheEntry]:
        out: List[CacheEntry] = []
        for locale in sorted(self._by_locale):
            bucket = self._by_locale[locale]
            out.extend(bucket[k] for k in sorted(bucket))
        return out

    def stage(self, path: str) -> str:
        """Write the whole store to a temp file beside `path` and return its name."""
        tmp = temp_path_for(path)
        discard(tmp)
        try:
            with closing(sqlite3.connect(tmp)) as conn:
                conn.execute(SCHEMA)
                conn.executemany(
                    "INSERT INTO cache (locale, key, source_hash, translated) VALUES (?, ?, ?, ?)",
                    [(e.locale, e.key, e.source_hash, e.translated) for e in self.all_entries()],
                )
                conn.commit()
        except BaseException:
            discard(tmp)
            raise
        return tmp

    def save(self, path: str) -> None:
        try:
            tmp = self.stage(path)
        except (OSError, sqlite3.Error) as e:
            raise WriteError(f"cannot write cache {path}: {e}") from e
        try:
            commit_staged(tmp, path)
        except OSError as e:
            discard(tmp)
            raise WriteError(f"cannot replace cache {path}: {e}") from e
