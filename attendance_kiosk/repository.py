"""
Persistence module.

Stores whole collections of records (identities, attendance events).
Every write replaces the full collection, so readers never see a
partially written collection.
"""

import os
import pickle
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List

from .exceptions import StorageFailure
from .logging_config import get_logger

logger = get_logger(__name__)

IDENTITIES = 'identities'
ATTENDANCE = 'attendance'

Record = Dict[str, Any]


class Repository(ABC):
    """Collection-level load/save contract."""

    @abstractmethod
    def load_all(self, collection: str) -> List[Record]:
        """Return all records of a collection in stored order."""

    @abstractmethod
    def save_all(self, collection: str, records: List[Record]) -> None:
        """Replace a collection with the given records."""


class MemoryRepository(Repository):
    """Repository kept in process memory (tests, ephemeral kiosks)."""

    def __init__(self):
        self._collections: Dict[str, List[Record]] = {}
        self._lock = threading.Lock()

    def load_all(self, collection: str) -> List[Record]:
        with self._lock:
            return [dict(r) for r in self._collections.get(collection, [])]

    def save_all(self, collection: str, records: List[Record]) -> None:
        with self._lock:
            self._collections[collection] = [dict(r) for r in records]


class PickleFileRepository(Repository):
    """
    Repository writing one pickle file per collection.

    Files are written to a temporary file in the same directory and moved
    into place with ``os.replace``, which is atomic on POSIX and Windows.
    """

    def __init__(self, data_dir: str):
        """
        Initialize the repository.

        Args:
            data_dir: Directory for the collection files (created if missing)
        """
        self.data_dir = Path(data_dir)
        self._lock = threading.Lock()

    def _path(self, collection: str) -> Path:
        return self.data_dir / f'{collection}.pkl'

    def load_all(self, collection: str) -> List[Record]:
        """
        Load a collection from disk.

        Args:
            collection: Collection name

        Returns:
            List of records, empty if the collection was never saved

        Raises:
            StorageFailure: If the file exists but cannot be read
        """
        path = self._path(collection)
        if not path.exists():
            logger.debug(f'Collection {collection} not found at {path}')
            return []

        try:
            with open(path, 'rb') as f:
                data = pickle.load(f)
        except (OSError, pickle.UnpicklingError, EOFError) as e:
            logger.error(f'Failed to load {collection}: {e}')
            raise StorageFailure(f'Failed to load {collection}: {e}') from e

        records = data.get('records', [])
        logger.info(f'Loaded {len(records)} {collection} records')
        return records

    def save_all(self, collection: str, records: List[Record]) -> None:
        """
        Save a collection to disk atomically.

        Args:
            collection: Collection name
            records: Records to store

        Raises:
            StorageFailure: If the collection cannot be written
        """
        path = self._path(collection)
        with self._lock:
            try:
                self.data_dir.mkdir(parents=True, exist_ok=True)
                fd, tmp_path = tempfile.mkstemp(
                    prefix=f'.{collection}-', suffix='.tmp', dir=self.data_dir
                )
                try:
                    with os.fdopen(fd, 'wb') as f:
                        pickle.dump({'records': list(records)}, f)
                    os.replace(tmp_path, path)
                except BaseException:
                    if os.path.exists(tmp_path):
                        os.unlink(tmp_path)
                    raise
            except (OSError, pickle.PicklingError) as e:
                logger.error(f'Failed to save {collection}: {e}')
                raise StorageFailure(f'Failed to save {collection}: {e}') from e

        logger.debug(f'Saved {len(records)} {collection} records')
