"""
Dedup cache of already-notified availability slots.

A key, once added, is never removed: a slot that closes and later reopens is
not notified again. Every add is written through to storage immediately, so
the stored set always matches what has been notified even if the process is
terminated mid-run.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from slotwatch.models.database import AsyncSessionLocal, NotifiedKeyRecord

logger = logging.getLogger(__name__)


class DedupCache(ABC):
    """Repository of notified key identities."""

    @abstractmethod
    async def load(self) -> set[str]:
        """Load the persisted keys; called once at run start."""
        pass

    @abstractmethod
    async def has(self, key: str) -> bool:
        pass

    @abstractmethod
    async def add(self, key: str) -> None:
        """Add a key and persist it before returning."""
        pass


class InMemoryDedupCache(DedupCache):
    """Cache without persistence, for tests and dry runs."""

    def __init__(self, keys: set[str] | None = None) -> None:
        self.keys: set[str] = set(keys or ())

    async def load(self) -> set[str]:
        return set(self.keys)

    async def has(self, key: str) -> bool:
        return key in self.keys

    async def add(self, key: str) -> None:
        self.keys.add(key)


class JsonFileDedupCache(DedupCache):
    """
    Cache persisted as a flat JSON list of key strings.

    A missing or unreadable file loads as an empty cache. Writes go to a
    temporary file that replaces the store atomically.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._keys: set[str] | None = None

    async def load(self) -> set[str]:
        self._keys = self._read()
        logger.info(f"Loaded {len(self._keys)} notified keys from {self.path}")
        return set(self._keys)

    def _read(self) -> set[str]:
        if not self.path.exists():
            return set()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read dedup cache {self.path}: {e}. Starting empty")
            return set()
        if not isinstance(data, list):
            logger.warning(f"Dedup cache {self.path} is not a list. Starting empty")
            return set()
        return {str(k) for k in data}

    async def _ensure_loaded(self) -> set[str]:
        if self._keys is None:
            self._keys = self._read()
            logger.info(f"Loaded {len(self._keys)} notified keys from {self.path}")
        return self._keys

    async def has(self, key: str) -> bool:
        return key in await self._ensure_loaded()

    async def add(self, key: str) -> None:
        keys = await self._ensure_loaded()
        if key in keys:
            return
        keys.add(key)
        self._write(keys)

    def _write(self, keys: set[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".notified-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(sorted(keys), f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


class DatabaseDedupCache(DedupCache):
    """Cache persisted in the notified_keys table; each add commits immediately."""

    def __init__(self, session_factory=None) -> None:  # type: ignore[no-untyped-def]
        self._session_factory = session_factory or AsyncSessionLocal

    async def load(self) -> set[str]:
        async with self._session_factory() as db:
            result = await db.execute(select(NotifiedKeyRecord.key))
            keys = set(result.scalars().all())
        logger.info(f"Loaded {len(keys)} notified keys from database")
        return keys

    async def has(self, key: str) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(
                select(NotifiedKeyRecord).where(NotifiedKeyRecord.key == key)
            )
            return result.scalar_one_or_none() is not None

    async def add(self, key: str) -> None:
        async with self._session_factory() as db:
            db.add(NotifiedKeyRecord(key=key))
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                logger.debug(f"Key already notified: {key}")
