"""Filter predicates exchanged between the query policy and the record store.

A predicate is a conjunction of clauses. Field paths may be dotted
(``appointment.clinician_id``) to reach a column through a relationship.
Predicates only ever narrow when combined; there is no OR.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Entity(str, Enum):
    """Entity types known to the record store."""

    APPOINTMENT = "appointment"
    MEDICAL_RECORD = "medical_record"
    LAB_TEST = "lab_test"
    PRESCRIPTION = "prescription"
    PAYMENT = "payment"
    PATIENT = "patient"
    SCHEDULE = "schedule"
    TASK = "task"
    NOTIFICATION = "notification"
    MESSAGE_THREAD = "message_thread"
    MESSAGE = "message"
    # Identity tables, read only while resolving an access context
    USER = "user"
    CLINICIAN = "clinician"
    STAFF_MEMBER = "staff_member"


class Op(str, Enum):
    EQ = "eq"
    IN = "in"
    LT = "lt"


@dataclass(frozen=True)
class Subselect:
    """Values of ``field`` taken from ``entity`` rows matching ``where``."""

    entity: Entity
    field: str
    where: "FilterPredicate"


@dataclass(frozen=True)
class Clause:
    field: str
    op: Op
    value: Any


@dataclass(frozen=True)
class FilterPredicate:
    """Conjunction of clauses, or an explicit deny-all."""

    clauses: tuple[Clause, ...] = ()
    denied: bool = False
    reason: str | None = field(default=None, compare=False)

    @classmethod
    def allow_all(cls) -> "FilterPredicate":
        return cls()

    @classmethod
    def deny_all(cls, reason: str) -> "FilterPredicate":
        return cls(denied=True, reason=reason)

    @classmethod
    def where(cls, **fields: Any) -> "FilterPredicate":
        """Build equality clauses; iterables and subselects become IN clauses."""
        return cls.from_mapping(fields)

    @classmethod
    def from_mapping(cls, fields: Mapping[str, Any]) -> "FilterPredicate":
        clauses = []
        for name, value in fields.items():
            if isinstance(value, Subselect):
                clauses.append(Clause(name, Op.IN, value))
            elif isinstance(value, (list, tuple, set, frozenset)):
                clauses.append(Clause(name, Op.IN, tuple(value)))
            else:
                clauses.append(Clause(name, Op.EQ, value))
        return cls(clauses=tuple(clauses))

    @classmethod
    def before(cls, field_name: str, value: Any) -> "FilterPredicate":
        """Single ``field < value`` clause."""
        return cls(clauses=(Clause(field_name, Op.LT, value),))

    @property
    def is_unrestricted(self) -> bool:
        return not self.denied and not self.clauses

    def intersect(self, *others: "FilterPredicate | Mapping[str, Any] | None") -> "FilterPredicate":
        """Combine with other predicates. The result never matches more rows."""
        clauses = list(self.clauses)
        denied = self.denied
        reason = self.reason
        for other in _coerce_all(others):
            clauses.extend(other.clauses)
            if other.denied and not denied:
                denied = True
                reason = other.reason
        return FilterPredicate(clauses=tuple(clauses), denied=denied, reason=reason)

    def fields(self) -> set[str]:
        return {clause.field for clause in self.clauses}


def _coerce_all(
    items: Iterable["FilterPredicate | Mapping[str, Any] | None"],
) -> list[FilterPredicate]:
    coerced = []
    for item in items:
        if item is None:
            continue
        if isinstance(item, FilterPredicate):
            coerced.append(item)
        else:
            coerced.append(FilterPredicate.from_mapping(item))
    return coerced
