"""Persistence interfaces and the in-memory store.

Services talk to persistence through the Store protocol: one repository per
record type plus a transaction() scope that makes multi-statement work
atomic. InMemoryStore implements it for the API server default wiring and
for tests.

InMemoryStore semantics:
- A single asyncio.Lock serializes transactions and standalone statements
- A transaction snapshots every table and restores it if the body raises
- Nested transaction() calls in the same task join the outer transaction
- Records are copied on the way in and out, so callers never share state
"""

from __future__ import annotations

__all__ = [
    "InMemoryStore",
    "Repository",
    "Store",
]

import asyncio
import contextvars
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel

from oidc_auth.exceptions import NotFoundError
from oidc_auth.models import IdentityMembership, IssuedAccessToken, TenantKeyMaterial, TrustPolicy, utc_now

T = TypeVar("T", bound=BaseModel)


class Repository(Protocol[T]):
    """CRUD operations on one record type. Filters are attribute equality."""

    async def find_one(self, **filters: Any) -> T | None: ...

    async def find(self, **filters: Any) -> list[T]: ...

    async def create(self, record: T) -> T: ...

    async def update_by_id(self, record_id: str, changes: dict[str, Any]) -> T: ...

    async def delete(self, **filters: Any) -> list[T]: ...


class Store(Protocol):
    """Persistence collaborator consumed by the services."""

    trust_policies: Repository[TrustPolicy]
    memberships: Repository[IdentityMembership]
    tenant_keys: Repository[TenantKeyMaterial]
    access_tokens: Repository[IssuedAccessToken]

    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Scope in which all statements commit together or not at all."""
        ...


class _Table(Generic[T]):
    """One in-memory table keyed by record id."""

    def __init__(self, store: "InMemoryStore", name: str) -> None:
        self._store = store
        self.name = name
        self.rows: dict[str, T] = {}

    @staticmethod
    def _matches(record: T, filters: dict[str, Any]) -> bool:
        return all(getattr(record, key) == value for key, value in filters.items())

    async def find_one(self, **filters: Any) -> T | None:
        async with self._store._statement():
            for record in self.rows.values():
                if self._matches(record, filters):
                    return record.model_copy(deep=True)
            return None

    async def find(self, **filters: Any) -> list[T]:
        async with self._store._statement():
            return [r.model_copy(deep=True) for r in self.rows.values() if self._matches(r, filters)]

    async def create(self, record: T) -> T:
        async with self._store._statement():
            record_id = getattr(record, "id")
            if record_id in self.rows:
                raise ValueError(f"Duplicate id {record_id} in {self.name}")
            self.rows[record_id] = record.model_copy(deep=True)
            return record.model_copy(deep=True)

    async def update_by_id(self, record_id: str, changes: dict[str, Any]) -> T:
        async with self._store._statement():
            current = self.rows.get(record_id)
            if current is None:
                raise NotFoundError(f"Record '{record_id}' not found in {self.name}")
            if "updated_at" in type(current).model_fields:
                changes = {**changes, "updated_at": utc_now()}
            # Round-trip through validation so bad values are rejected
            updated = type(current).model_validate({**current.model_dump(), **changes})
            self.rows[record_id] = updated
            return updated.model_copy(deep=True)

    async def delete(self, **filters: Any) -> list[T]:
        async with self._store._statement():
            doomed = [key for key, r in self.rows.items() if self._matches(r, filters)]
            return [self.rows.pop(key) for key in doomed]


class InMemoryStore:
    """Transactional in-memory implementation of Store."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        # Set while the current task holds the lock
        self._owner: contextvars.ContextVar[bool] = contextvars.ContextVar(
            f"store_owner_{id(self)}", default=False
        )
        self.trust_policies: _Table[TrustPolicy] = _Table(self, "trust_policies")
        self.memberships: _Table[IdentityMembership] = _Table(self, "memberships")
        self.tenant_keys: _Table[TenantKeyMaterial] = _Table(self, "tenant_keys")
        self.access_tokens: _Table[IssuedAccessToken] = _Table(self, "access_tokens")

    @property
    def _tables(self) -> tuple[_Table[Any], ...]:
        return (self.trust_policies, self.memberships, self.tenant_keys, self.access_tokens)

    @asynccontextmanager
    async def _statement(self) -> AsyncIterator[None]:
        if self._owner.get():
            yield
            return
        async with self._lock:
            token = self._owner.set(True)
            try:
                yield
            finally:
                self._owner.reset(token)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Run the body atomically, rolling back every table on any exception."""
        if self._owner.get():
            # Joined an enclosing transaction: it owns commit and rollback
            yield
            return
        async with self._lock:
            token = self._owner.set(True)
            snapshot = {table.name: dict(table.rows) for table in self._tables}
            try:
                yield
            except BaseException:
                for table in self._tables:
                    table.rows = snapshot[table.name]
                raise
            finally:
                self._owner.reset(token)
