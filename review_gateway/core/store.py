"""Record store: the narrow persistence interface the workflow relies on.

Wraps an ``AsyncSession`` with four operations: read by id, insert,
conditional write and query by field. Conditional writes are single
``UPDATE ... WHERE`` statements, so under concurrent requests exactly one
writer observes the expected value and the rest get ``False``.

Every call is bounded by a timeout. A timeout is transient: read-only calls
may be retried by the caller, conditional writes must be re-decided from a
fresh read instead.
"""

import asyncio
import logging
from collections.abc import Awaitable, Mapping
from typing import Any, Sequence, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .errors import RecordConflictError, RecordStoreTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecordStore:
    """Conditional-write capable view over a database session."""

    def __init__(self, session: AsyncSession, timeout: float | None = None):
        self._session = session
        self._timeout = timeout if timeout is not None else get_settings().store_timeout_seconds

    @property
    def session(self) -> AsyncSession:
        return self._session

    async def _run(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Record store {operation} timed out after {self._timeout}s")
            raise RecordStoreTimeoutError(
                f"Record store {operation} timed out after {self._timeout}s"
            )

    async def get(self, model: type[T], record_id: Any) -> T | None:
        """Read a record by primary key, always from the database."""
        return await self._run(
            f"get {model.__name__}",
            self._session.get(model, record_id, populate_existing=True),
        )

    async def put(self, record: T) -> T:
        """Insert a new record."""
        self._session.add(record)
        try:
            await self._run(f"put {type(record).__name__}", self._session.flush())
        except IntegrityError as e:
            raise RecordConflictError(f"{type(record).__name__} already exists: {e.orig}")
        return record

    async def put_if_absent(self, record: Any) -> bool:
        """Insert inside a savepoint. Returns False if the record already existed.

        Unlike ``put``, a collision leaves the surrounding transaction usable.
        """

        async def insert() -> None:
            async with self._session.begin_nested():
                self._session.add(record)
                await self._session.flush()

        try:
            await self._run(f"put_if_absent {type(record).__name__}", insert())
        except IntegrityError:
            return False
        return True

    async def compare_and_swap(
        self,
        model: type,
        record_id: Any,
        expected: Mapping[str, Any],
        updated: Mapping[str, Any],
    ) -> bool:
        """Apply ``updated`` only if every field in ``expected`` still matches.

        Returns True if the record was written, False if it was missing or any
        expected value differed. Values in ``updated`` may be SQL expressions.
        """
        criteria = [model.__mapper__.primary_key[0] == record_id]
        for field, value in expected.items():
            column = getattr(model, field)
            criteria.append(column.is_(None) if value is None else column == value)

        stmt = (
            update(model)
            .where(*criteria)
            .values(**updated)
            .execution_options(synchronize_session=False)
        )
        result = await self._run(f"compare_and_swap {model.__name__}", self._session.execute(stmt))
        return result.rowcount == 1

    async def query(
        self,
        model: type[T],
        *criteria: Any,
        order_by: Any = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> Sequence[T]:
        """Select records matching all criteria."""
        stmt = select(model).where(*criteria).execution_options(populate_existing=True)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._run(f"query {model.__name__}", self._session.execute(stmt))
        return result.scalars().all()

    async def commit(self) -> None:
        """Make everything written so far durable."""
        await self._run("commit", self._session.commit())
