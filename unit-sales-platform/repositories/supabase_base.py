"""
Shared plumbing for the Supabase-backed repositories.

Each repository maps one table keyed by a UUID column. Updates are
conditional on the ``version`` column, which is how optimistic concurrency
reaches the database: PostgREST applies ``update ... where id = ? and
version = ?`` atomically and returns no rows when another writer won.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, TypeVar
from uuid import UUID

from supabase import Client  # type: ignore[import-not-found]

from domain.errors import ConflictError, NotFoundError, StaleVersionError
from repositories.client import check_response, get_supabase

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNIQUE_VIOLATION = "23505"


class SupabaseRepository(Generic[T]):
    table: str
    key_column: str
    entity: str

    def __init__(
        self,
        to_row: Callable[[T], Dict[str, Any]],
        from_row: Callable[[Mapping[str, Any]], T],
        key: Callable[[T], UUID],
        client: Optional[Client] = None,
    ) -> None:
        self._to_row = to_row
        self._from_row = from_row
        self._key = key
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    def _query(self):
        return self.client.table(self.table)

    def get(self, entity_id: UUID) -> Optional[T]:
        response = (
            self._query()
            .select("*")
            .eq(self.key_column, str(entity_id))
            .limit(1)
            .execute()
        )
        rows = check_response(response, f"get {self.entity}")
        if not rows:
            return None
        return self._from_row(rows[0])

    def add(self, item: T) -> T:
        response = self._query().insert(self._to_row(item)).execute()
        error = getattr(response, "error", None)
        if error:
            # If the DB enforces uniqueness, surface it as a conflict.
            if str(getattr(error, "code", None)) == _UNIQUE_VIOLATION:
                raise ConflictError(
                    f"{self.entity} already exists", entity_id=str(self._key(item))
                ) from None
            raise RuntimeError(f"Failed to insert {self.entity}: {error}")
        return item

    def update(self, item: T, expected_version: int) -> T:
        entity_id = self._key(item)
        row = self._to_row(item)
        row["version"] = expected_version + 1
        response = (
            self._query()
            .update(row)
            .eq(self.key_column, str(entity_id))
            .eq("version", expected_version)
            .execute()
        )
        rows = check_response(response, f"update {self.entity}")
        if not rows:
            if self.get(entity_id) is None:
                raise NotFoundError(self.entity, entity_id)
            logger.warning(
                "Stale version on update",
                extra={"entity": self.entity, "entity_id": str(entity_id), "expected_version": expected_version},
            )
            raise StaleVersionError(self.entity, entity_id, expected_version)
        return self._from_row(rows[0])

    def remove(self, entity_id: UUID) -> None:
        response = self._query().delete().eq(self.key_column, str(entity_id)).execute()
        check_response(response, f"delete {self.entity}")

    def _select(self, filters: Mapping[str, Any]) -> List[T]:
        query = self._query().select("*")
        for column, value in filters.items():
            query = query.eq(column, value)
        rows = check_response(query.execute(), f"list {self.entity}")
        return [self._from_row(row) for row in rows]


__all__ = ["SupabaseRepository"]
