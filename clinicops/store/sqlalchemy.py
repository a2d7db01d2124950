"""SQLAlchemy implementation of the Record Store.

Compiles ``FilterPredicate`` objects into SQL. Dotted field paths are joined
through the named relationship; ``Subselect`` values become ``IN (SELECT ...)``.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Mapping
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, TypeVar

from sqlalchemy import Select, false, select
from sqlalchemy import update as sa_update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import ColumnProperty, RelationshipProperty

from clinicops.access.predicates import Clause, Entity, FilterPredicate, Op, Subselect
from clinicops.core.exceptions import NotFoundError, StaleStateError, ValidationError
from clinicops.models import (
    Appointment,
    Clinician,
    ClinicianSchedule,
    LabTest,
    MedicalRecord,
    Message,
    MessageThread,
    Notification,
    Patient,
    Payment,
    Prescription,
    StaffMember,
    StaffTask,
    User,
)
from clinicops.store.base import RecordStore, RecordStoreTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ENTITY_MODELS: dict[Entity, type] = {
    Entity.APPOINTMENT: Appointment,
    Entity.MEDICAL_RECORD: MedicalRecord,
    Entity.LAB_TEST: LabTest,
    Entity.PRESCRIPTION: Prescription,
    Entity.PAYMENT: Payment,
    Entity.PATIENT: Patient,
    Entity.SCHEDULE: ClinicianSchedule,
    Entity.TASK: StaffTask,
    Entity.NOTIFICATION: Notification,
    Entity.MESSAGE_THREAD: MessageThread,
    Entity.MESSAGE: Message,
    Entity.USER: User,
    Entity.CLINICIAN: Clinician,
    Entity.STAFF_MEMBER: StaffMember,
}


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def _column(model: type, name: str):
    prop = model.__mapper__.attrs.get(name)
    if not isinstance(prop, ColumnProperty):
        raise ValidationError(f"Unknown field '{name}' for {model.__name__}")
    return getattr(model, name)


class _Compiler:
    """Translates predicates for one model into where-clauses and joins."""

    def __init__(self, model: type):
        self.model = model
        self.joins: list[Any] = []

    def resolve(self, path: str):
        parts = path.split(".")
        if len(parts) == 1:
            return _column(self.model, parts[0])
        if len(parts) != 2:
            raise ValidationError(f"Unsupported field path '{path}'")

        rel_name, col_name = parts
        prop = self.model.__mapper__.attrs.get(rel_name)
        if not isinstance(prop, RelationshipProperty):
            raise ValidationError(f"Unknown relationship '{rel_name}' for {self.model.__name__}")

        relationship_attr = getattr(self.model, rel_name)
        if relationship_attr not in self.joins:
            self.joins.append(relationship_attr)
        return _column(prop.mapper.class_, col_name)

    def condition(self, clause: Clause):
        column = self.resolve(clause.field)
        if clause.op == Op.EQ:
            if clause.value is None:
                return column.is_(None)
            return column == _plain(clause.value)
        if clause.op == Op.LT:
            return column < _plain(clause.value)
        if isinstance(clause.value, Subselect):
            return column.in_(compile_select(clause.value))
        return column.in_([_plain(v) for v in clause.value])

    def apply(self, stmt: Select, where: FilterPredicate) -> Select:
        if where.denied:
            return stmt.where(false())
        if where.is_unrestricted:
            return stmt
        conditions = [self.condition(clause) for clause in where.clauses]
        for relationship_attr in self.joins:
            stmt = stmt.join(relationship_attr)
        if conditions:
            stmt = stmt.where(*conditions)
        return stmt


def compile_select(subselect: Subselect) -> Select:
    """Build ``SELECT field FROM entity WHERE ...`` for an IN clause."""
    model = ENTITY_MODELS[subselect.entity]
    compiler = _Compiler(model)
    stmt = select(_column(model, subselect.field))
    return compiler.apply(stmt, subselect.where)


class SqlAlchemyRecordStore(RecordStore):
    """Record store backed by an ``AsyncSession``.

    Every write commits. When ``timeout`` is set each call is bounded and
    raises RecordStoreTimeoutError once exceeded.
    """

    def __init__(self, session: AsyncSession, timeout: float | None = None):
        self.session = session
        self.timeout = timeout

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        if self.timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise RecordStoreTimeoutError(
                f"Record store call exceeded {self.timeout}s"
            ) from e

    @staticmethod
    def _model(entity: Entity) -> type:
        return ENTITY_MODELS[entity]

    def _build_select(
        self,
        entity: Entity,
        where: FilterPredicate,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> Select:
        model = self._model(entity)
        stmt = _Compiler(model).apply(select(model), where)

        if order_by:
            descending = order_by.startswith("-")
            column = _column(model, order_by.lstrip("-"))
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return stmt

    async def find(
        self,
        entity: Entity,
        where: FilterPredicate,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Any]:
        stmt = self._build_select(entity, where, order_by, limit)

        async def run() -> list[Any]:
            result = await self.session.execute(stmt)
            return list(result.scalars().unique().all())

        return await self._bounded(run())

    async def find_one(self, entity: Entity, where: FilterPredicate) -> Any | None:
        rows = await self.find(entity, where, limit=1)
        return rows[0] if rows else None

    async def insert(self, entity: Entity, fields: Mapping[str, Any]) -> Any:
        model = self._model(entity)
        for name in fields:
            _column(model, name)
        record = model(**{k: _plain(v) for k, v in fields.items()})

        async def run() -> Any:
            self.session.add(record)
            await self.session.commit()
            await self.session.refresh(record)
            return record

        return await self._bounded(run())

    async def update(
        self,
        entity: Entity,
        record_id: str,
        fields: Mapping[str, Any],
        expected: Mapping[str, Any] | None = None,
    ) -> Any:
        model = self._model(entity)
        values = {_column(model, k).key: _plain(v) for k, v in fields.items()}
        conditions = [model.id == record_id]
        for name, value in (expected or {}).items():
            column = _column(model, name)
            conditions.append(column.is_(None) if value is None else column == _plain(value))

        # Optimistic concurrency counter
        if "version" in model.__mapper__.attrs and "version" not in values:
            values["version"] = model.version + 1

        stmt = (
            sa_update(model)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        async def run() -> Any:
            result = await self.session.execute(stmt)
            if result.rowcount == 0:
                await self.session.rollback()
                existing = await self.session.get(model, record_id)
                if existing is None:
                    raise NotFoundError(f"{entity.value} {record_id} not found")
                raise StaleStateError(
                    f"{entity.value} {record_id} changed concurrently; re-fetch and retry"
                )
            await self.session.commit()
            return await self.session.get(model, record_id, populate_existing=True)

        return await self._bounded(run())

    async def delete(self, entity: Entity, record_id: str) -> None:
        model = self._model(entity)

        async def run() -> None:
            record = await self.session.get(model, record_id)
            if record is None:
                raise NotFoundError(f"{entity.value} {record_id} not found")
            await self.session.delete(record)
            await self.session.commit()

        await self._bounded(run())


@asynccontextmanager
async def session_store(
    session_factory: async_sessionmaker[AsyncSession],
    timeout: float | None = None,
) -> AsyncIterator[SqlAlchemyRecordStore]:
    """Open a fresh session and wrap it in a record store."""
    async with session_factory() as session:
        yield SqlAlchemyRecordStore(session, timeout=timeout)
