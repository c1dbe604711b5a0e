"""
Embedding store module.

Holds enrolled identities in insertion order and hands out immutable
snapshots for matching. Mutations are copy-then-swap: a new tuple is
built, flushed to the repository, then published. Snapshots taken
earlier keep referencing the old tuple.
"""

import threading
from dataclasses import replace
from typing import Iterable, List, Optional, Tuple

from ..exceptions import DuplicateIdentity, IdentityNotFound, StorageFailure
from ..logging_config import get_logger
from ..repository import IDENTITIES, Repository
from .types import EnrolledIdentity, as_embedding

logger = get_logger(__name__)

Snapshot = Tuple[EnrolledIdentity, ...]


class EmbeddingStore:
    """Enrolled identities backed by a repository collection."""

    def __init__(self, repository: Repository, dimension: int):
        """
        Initialize the store and load persisted identities.

        Args:
            repository: Collection storage
            dimension: Embedding dimension D enforced on every identity

        Raises:
            StorageFailure: If the collection cannot be loaded
            EmbeddingDimensionError: If a stored embedding has another dimension
            StorageFailure: If the stored collection repeats an id
        """
        self.repository = repository
        self.dimension = dimension
        self._lock = threading.Lock()
        self._identities: Snapshot = tuple(
            EnrolledIdentity.from_record(record, dimension)
            for record in repository.load_all(IDENTITIES)
        )

        seen = set()
        for identity in self._identities:
            if identity.id in seen:
                raise StorageFailure(f'Stored identities repeat id {identity.id}')
            seen.add(identity.id)
        logger.info(f'Embedding store ready with {len(self._identities)} identities')

    def __len__(self) -> int:
        return len(self._identities)

    def snapshot(self) -> Snapshot:
        """Point-in-time, insertion-ordered view of all identities."""
        return self._identities

    def get(self, identity_id: str) -> Optional[EnrolledIdentity]:
        for identity in self._identities:
            if identity.id == identity_id:
                return identity
        return None

    def list_by_name(self) -> List[EnrolledIdentity]:
        return sorted(self._identities, key=lambda i: (i.display_name.lower(), i.id))

    def add(self, identity: EnrolledIdentity) -> EnrolledIdentity:
        """
        Enroll a new identity.

        Raises:
            DuplicateIdentity: If the id is already enrolled
            EmbeddingDimensionError: If the embedding has the wrong dimension
            StorageFailure: If the flush fails (store unchanged)
        """
        identity = replace(identity, embedding=as_embedding(identity.embedding, self.dimension))
        with self._lock:
            if any(i.id == identity.id for i in self._identities):
                raise DuplicateIdentity(f'Identity {identity.id} already exists')
            self._publish(self._identities + (identity,))

        logger.info(f'Enrolled {identity.display_name} (ID: {identity.id})')
        return identity

    def update(
        self,
        identity_id: str,
        new_embedding: Optional[Iterable[float]] = None,
        display_name: Optional[str] = None,
    ) -> EnrolledIdentity:
        """
        Re-enroll an identity, replacing its embedding and/or display name.

        Raises:
            IdentityNotFound: If the id is not enrolled
            EmbeddingDimensionError: If the embedding has the wrong dimension
            StorageFailure: If the flush fails (store unchanged)
        """
        changes = {}
        if new_embedding is not None:
            changes['embedding'] = as_embedding(new_embedding, self.dimension)
        if display_name is not None:
            changes['display_name'] = display_name

        with self._lock:
            index = self._index_of(identity_id)
            updated = replace(self._identities[index], **changes)
            identities = list(self._identities)
            identities[index] = updated
            self._publish(tuple(identities))

        logger.info(f'Re-enrolled {updated.display_name} (ID: {identity_id})')
        return updated

    def remove(self, identity_id: str) -> None:
        """
        Remove an identity.

        Raises:
            IdentityNotFound: If the id is not enrolled
            StorageFailure: If the flush fails (store unchanged)
        """
        with self._lock:
            index = self._index_of(identity_id)
            self._publish(self._identities[:index] + self._identities[index + 1:])

        logger.info(f'Removed identity {identity_id}')

    def _index_of(self, identity_id: str) -> int:
        for index, identity in enumerate(self._identities):
            if identity.id == identity_id:
                return index
        raise IdentityNotFound(f'Identity {identity_id} not found')

    def _publish(self, identities: Snapshot) -> None:
        # Caller holds the lock
        self.repository.save_all(IDENTITIES, [i.to_record() for i in identities])
        self._identities = identities
