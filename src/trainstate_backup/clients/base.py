"""Base protocol for remote record store clients."""

from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable

from ..errors import PermanentRemoteError
from ..models.snapshot import Record


@runtime_checkable
class RecordStore(Protocol):
    """Protocol for schemaless remote record stores.

    Whole-request failures raise :class:`~trainstate_backup.errors.RemoteError`
    subclasses; per-record failures are returned as id lists. Writing a
    record whose id already exists overwrites it.
    """

    @property
    def store_name(self) -> str:
        """Return a display name for this store."""
        ...

    async def write_batch(self, records: list[Record]) -> list[str]:
        """Write records, returning the ids the store rejected."""
        ...

    async def query(
        self, kind: str | None = None, snapshot_id: str | None = None
    ) -> list[Record]:
        """Return records matching every given tag (all records if none)."""
        ...

    async def delete_batch(self, record_ids: list[str]) -> list[str]:
        """Delete records, returning the ids that could not be deleted.

        Ids that do not exist are not failures.
        """
        ...


class BaseRecordStore(ABC):
    """Base class for record stores with common functionality."""

    def __init__(self, max_batch_size: int | None = None):
        self.max_batch_size = max_batch_size

    @property
    @abstractmethod
    def store_name(self) -> str:
        """Return a display name for this store."""
        pass

    @abstractmethod
    async def write_batch(self, records: list[Record]) -> list[str]:
        pass

    @abstractmethod
    async def query(
        self, kind: str | None = None, snapshot_id: str | None = None
    ) -> list[Record]:
        pass

    @abstractmethod
    async def delete_batch(self, record_ids: list[str]) -> list[str]:
        pass

    def check_batch_size(self, size: int) -> None:
        """Reject requests above the store's batch ceiling."""
        if self.max_batch_size is not None and size > self.max_batch_size:
            raise PermanentRemoteError(
                f"Batch of {size} exceeds limit of {self.max_batch_size} records"
            )
