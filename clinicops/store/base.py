"""Record Store boundary used by the access and lifecycle layers."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from clinicops.access.predicates import Entity, FilterPredicate


class RecordStoreError(Exception):
    """Base exception for record store failures."""

    pass


class RecordStoreTimeoutError(RecordStoreError):
    """A single store call exceeded its time budget."""

    pass


class RecordStore(ABC):
    """Abstract create/read/update/delete/query-by-filter store."""

    @abstractmethod
    async def find(
        self,
        entity: Entity,
        where: FilterPredicate,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Any]:
        """Return all rows matching ``where``.

        ``order_by`` names a column; prefix with ``-`` for descending.
        """
        pass

    @abstractmethod
    async def find_one(self, entity: Entity, where: FilterPredicate) -> Any | None:
        """Return the first row matching ``where`` or None."""
        pass

    @abstractmethod
    async def insert(self, entity: Entity, fields: Mapping[str, Any]) -> Any:
        """Insert a row and return it."""
        pass

    @abstractmethod
    async def update(
        self,
        entity: Entity,
        record_id: str,
        fields: Mapping[str, Any],
        expected: Mapping[str, Any] | None = None,
    ) -> Any:
        """Update a row and return the fresh copy.

        ``expected`` holds column values the row must still have; when they
        no longer match nothing is written and StaleStateError is raised.
        """
        pass

    @abstractmethod
    async def delete(self, entity: Entity, record_id: str) -> None:
        """Delete a row."""
        pass
