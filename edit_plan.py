"""Ordered create/update/delete instructions for the ledger store.

The scheduling core never writes anything itself. It returns an ``EditPlan``
and the store applies the whole plan or none of it.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set

CREATE = "create"
UPDATE = "update"
DELETE = "delete"
ACTIONS = (CREATE, UPDATE, DELETE)

WORK_ITEMS = "work_items"
RECURRING_RULES = "recurring_rules"
FINANCIAL_EVENTS = "financial_events"
COUNTERPARTIES = "counterparties"
COLLECTIONS = (WORK_ITEMS, RECURRING_RULES, FINANCIAL_EVENTS, COUNTERPARTIES)


def new_id() -> str:
    return uuid.uuid4().hex


def record_fields(values: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``values`` in the stored form: ISO dates and decimal strings."""

    out: Dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, date):
            value = value.isoformat()
        elif isinstance(value, Decimal):
            value = str(value)
        out[key] = value
    return out


@dataclass(frozen=True)
class Operation:
    action: str
    collection: str
    record_id: Optional[str]
    fields: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.action not in ACTIONS:
            raise ValueError(f"Unknown plan action: {self.action}")
        if self.collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {self.collection}")
        if self.action != CREATE and self.record_id is None:
            raise ValueError(f"{self.action} on {self.collection} needs a record id")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "collection": self.collection,
            "record_id": self.record_id,
            "fields": dict(self.fields),
        }


@dataclass
class EditPlan:
    operations: List[Operation] = field(default_factory=list)

    def create(self, collection: str, fields: Dict[str, Any], record_id: Optional[str] = None) -> None:
        self.operations.append(Operation(CREATE, collection, record_id, record_fields(fields)))

    def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> None:
        self.operations.append(Operation(UPDATE, collection, record_id, record_fields(fields)))

    def delete(self, collection: str, record_id: str) -> None:
        self.operations.append(Operation(DELETE, collection, record_id))

    def extend(self, other: "EditPlan" | Iterable[Operation]) -> None:
        ops = other.operations if isinstance(other, EditPlan) else other
        self.operations.extend(ops)

    def is_empty(self) -> bool:
        return not self.operations

    def touched_ids(self, collection: Optional[str] = None) -> Set[str]:
        """Ids of existing records this plan updates or deletes."""
        return {
            op.record_id
            for op in self.operations
            if op.action != CREATE
            and op.record_id is not None
            and (collection is None or op.collection == collection)
        }

    def for_collection(self, collection: str) -> List[Operation]:
        return [op for op in self.operations if op.collection == collection]

    def to_dict(self) -> Dict[str, Any]:
        return {"operations": [op.to_dict() for op in self.operations]}

    def __len__(self) -> int:
        return len(self.operations)

    def __iter__(self) -> Iterator[Operation]:
        return iter(self.operations)
