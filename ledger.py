"""JSON-file ledger that applies edit plans all-or-nothing.

The file holds one list per collection. Plans are applied to a copy of the
current state; the copy replaces the file (written to a temporary file and
moved into place) and the in-memory state only once every operation has
succeeded. A lock keeps plans from interleaving within a process.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, List

from config import DATA_FILE
from edit_plan import COLLECTIONS, COUNTERPARTIES, CREATE, DELETE, EditPlan, Operation, new_id
from edit_plan import FINANCIAL_EVENTS, RECURRING_RULES, UPDATE, WORK_ITEMS
from errors import PlanConflict
from models import Counterparty, FinancialEvent, RecurringRule, WorkItem

logger = logging.getLogger(__name__)

RECORD_TYPES = {
    WORK_ITEMS: WorkItem,
    RECURRING_RULES: RecurringRule,
    FINANCIAL_EVENTS: FinancialEvent,
    COUNTERPARTIES: Counterparty,
}

State = Dict[str, Dict[str, dict]]


class LedgerStore:
    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path is not None else DATA_FILE
        self._lock = threading.Lock()
        self._state: State = self._read()

    # ------------------------------------------------------------------
    # Reading

    def _read(self) -> State:
        state: State = {name: {} for name in COLLECTIONS}
        if not self.path.exists():
            return state
        with self.path.open(encoding="utf-8") as f:
            raw = json.load(f)
        for name in COLLECTIONS:
            for record in raw.get(name, []):
                state[name][record["id"]] = record
        return state

    def reload(self) -> None:
        with self._lock:
            self._state = self._read()

    def _records(self, collection: str) -> List:
        record_type = RECORD_TYPES[collection]
        return [record_type.from_dict(r) for r in self._state[collection].values()]

    def work_items(self) -> List[WorkItem]:
        return self._records(WORK_ITEMS)

    def rules(self) -> List[RecurringRule]:
        return self._records(RECURRING_RULES)

    def events(self) -> List[FinancialEvent]:
        return self._records(FINANCIAL_EVENTS)

    def counterparties(self) -> Dict[str, Counterparty]:
        return {c.id: c for c in self._records(COUNTERPARTIES)}

    def get(self, collection: str, record_id: str):
        record = self._state[collection].get(record_id)
        if record is None:
            return None
        return RECORD_TYPES[collection].from_dict(record)

    # ------------------------------------------------------------------
    # Writing

    def _apply_operation(self, state: State, op: Operation, created: List[str]) -> None:
        records = state[op.collection]
        if op.action == CREATE:
            record_id = op.record_id or op.fields.get("id") or new_id()
            if record_id in records:
                raise PlanConflict(f"{op.collection} already has a record {record_id}")
            records[record_id] = dict(op.fields, id=record_id)
            created.append(record_id)
        elif op.record_id not in records:
            raise PlanConflict(f"{op.collection} has no record {op.record_id}")
        elif op.action == UPDATE:
            record_id = op.record_id
            records[record_id].update(op.fields)
        else:
            del records[op.record_id]
            return

        # rebuild the record so a bad field value fails the whole plan
        try:
            RECORD_TYPES[op.collection].from_dict(records[record_id])
        except (KeyError, TypeError, ValueError) as exc:
            raise PlanConflict(f"{op.collection} {record_id} would be invalid: {exc}") from exc

    def _write(self, state: State) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        payload = {name: list(state[name].values()) for name in COLLECTIONS}
        try:
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp, self.path)
        finally:
            if tmp.exists():
                tmp.unlink()

    def apply(self, plan: EditPlan) -> List[str]:
        """Apply every operation of ``plan`` or none of them.

        Returns the ids of created records in plan order.

        Raises
        ------
        PlanConflict
            If an operation targets a missing record, creates a duplicate, or
            leaves a record invalid. The ledger is unchanged.
        """

        if plan.is_empty():
            return []
        with self._lock:
            staged = copy.deepcopy(self._state)
            created: List[str] = []
            for op in plan:
                self._apply_operation(staged, op, created)
            self._write(staged)
            self._state = staged
        logger.info("Ledger %s committed %d operations", self.path.name, len(plan))
        return created

    def add_counterparty(self, counterparty: Counterparty) -> str:
        plan = EditPlan()
        plan.create(COUNTERPARTIES, counterparty.to_dict(), record_id=counterparty.id)
        return self.apply(plan)[0]

