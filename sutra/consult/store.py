"""
Consult Store — the data-store contract the core talks to.

Per-table CRUD with equality filters, ordered reads and single-row fetch
semantics.  Rows are held as JSON-mode dicts and handed back as the typed
records from ``sutra.consult.records``.

``InMemoryConsultStore`` backs tests and local development.  The GCS-backed
implementation lives in ``sutra.consult.gcs_store``.
"""

from __future__ import annotations

import copy
import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ValidationError

from sutra.consult.records import TABLE_MODELS

logger = logging.getLogger("consult.store")

InsertListener = Callable[[str, BaseModel], None]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Exceptions
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class StoreError(Exception):
    """Base class for every data-store failure."""


class RecordNotFoundError(StoreError):
    pass


class MultipleRecordsError(StoreError):
    """A single-row fetch matched more than one row."""


class StoreWriteError(StoreError):
    pass


class StoreConflictError(StoreWriteError):
    """Raised when optimistic locking fails (row was modified by another writer)."""


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Contract
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _model_for(table: str) -> type[BaseModel]:
    try:
        return TABLE_MODELS[table]
    except KeyError:
        raise StoreError(f"Unknown table '{table}'") from None


def _filter_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class ConsultStore(ABC):
    """
    Typed access to the consultation tables.

    Subclasses implement the four raw row primitives; everything else
    (validation, filtering, ordering, single-row semantics, insert
    notifications) is shared.
    """

    def __init__(self) -> None:
        self._insert_listeners: list[InsertListener] = []

    # ── Raw row primitives ──

    @abstractmethod
    def _create_row(self, table: str, row: dict) -> None:
        """Persist a new row.  Raises StoreConflictError if the id exists."""

    @abstractmethod
    def _load_row(self, table: str, record_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    def _update_row(
        self, table: str, record_id: str, apply: Callable[[dict], dict]
    ) -> dict:
        """Read-modify-write one row atomically.  Returns the stored row."""

    @abstractmethod
    def _scan(self, table: str, session_id: Optional[str] = None) -> list[dict]:
        """
        Rows of a table, in insertion order where the backend keeps one.

        ``session_id`` lets a backend that partitions rows by session read
        only that partition.  Backends may ignore it; ``select`` still
        applies every filter.
        """

    # ── Change notifications ──

    def add_insert_listener(self, listener: InsertListener) -> None:
        self._insert_listeners.append(listener)

    def _notify_insert(self, table: str, record: BaseModel) -> None:
        for listener in self._insert_listeners:
            try:
                listener(table, record)
            except Exception as e:
                logger.error("Insert listener failed for %s/%s: %s", table, getattr(record, "id", "?"), e)

    # ── Public API ──

    def insert(self, table: str, record: BaseModel) -> BaseModel:
        """Insert a typed record.  Returns the stored copy."""
        model = _model_for(table)
        if not isinstance(record, model):
            raise StoreWriteError(
                f"Table '{table}' holds {model.__name__}, got {type(record).__name__}"
            )
        row = record.model_dump(mode="json")
        self._create_row(table, row)
        stored = model.model_validate(row)
        logger.debug("Inserted %s/%s", table, stored.id)
        self._notify_insert(table, stored)
        return stored

    def update(self, table: str, record_id: str, changes: dict[str, Any]) -> BaseModel:
        """Apply ``changes`` to one row.  Raises RecordNotFoundError if absent."""
        model = _model_for(table)

        def apply(row: dict) -> dict:
            try:
                merged = model.model_validate({**row, **changes})
            except ValidationError as e:
                raise StoreWriteError(f"Invalid update for {table}/{record_id}: {e}") from e
            return merged.model_dump(mode="json")

        row = self._update_row(table, record_id, apply)
        return model.model_validate(row)

    def get(self, table: str, record_id: str) -> Optional[BaseModel]:
        row = self._load_row(table, record_id)
        if row is None:
            return None
        return _model_for(table).model_validate(row)

    def select(
        self,
        table: str,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        **filters: Any,
    ) -> list[BaseModel]:
        """
        Rows matching every equality filter, optionally ordered and limited.

        Ordering is stable: rows with equal sort keys keep store order.
        """
        model = _model_for(table)
        wanted = {k: _filter_value(v) for k, v in filters.items()}
        records = [
            model.model_validate(row)
            for row in self._scan(table, session_id=wanted.get("session_id"))
            if all(row.get(k) == v for k, v in wanted.items())
        ]
        if order_by:
            records.sort(key=lambda r: getattr(r, order_by), reverse=descending)
        if limit is not None:
            records = records[:limit]
        return records

    def single(self, table: str, **filters: Any) -> BaseModel:
        """Exactly one matching row, else RecordNotFoundError / MultipleRecordsError."""
        rows = self.select(table, **filters)
        if not rows:
            raise RecordNotFoundError(f"No {table} row matches {filters}")
        if len(rows) > 1:
            raise MultipleRecordsError(f"{len(rows)} {table} rows match {filters}")
        return rows[0]

    def maybe_single(self, table: str, **filters: Any) -> Optional[BaseModel]:
        """Like ``single`` but returns None when nothing matches."""
        rows = self.select(table, **filters)
        if len(rows) > 1:
            raise MultipleRecordsError(f"{len(rows)} {table} rows match {filters}")
        return rows[0] if rows else None

    # ── Joins ──

    def get_participant_identity(self, session_id: str, doctor_id: str) -> Optional[str]:
        """
        Identity-provider subject linked to participant ``doctor_id`` of a session.

        None when the doctor is not a participant, the doctor row is missing,
        or the doctor has no linked identity.
        """
        participant = self.maybe_single(
            "session_participants", session_id=session_id, doctor_id=doctor_id
        )
        if participant is None:
            return None
        doctor = self.get("doctors", participant.doctor_id)
        if doctor is None:
            return None
        return doctor.anonymous_id


class InMemoryConsultStore(ConsultStore):
    """
    Dict-backed store.  Rows are deep-copied on the way in and out, so
    callers can never mutate stored state by accident.
    """

    def __init__(self) -> None:
        super().__init__()
        self._tables: dict[str, dict[str, dict]] = {name: {} for name in TABLE_MODELS}
        self._lock = threading.Lock()

    def _create_row(self, table: str, row: dict) -> None:
        with self._lock:
            rows = self._tables[table]
            if row["id"] in rows:
                raise StoreConflictError(f"{table}/{row['id']} already exists")
            rows[row["id"]] = copy.deepcopy(row)

    def _load_row(self, table: str, record_id: str) -> Optional[dict]:
        with self._lock:
            row = self._tables[table].get(record_id)
            return copy.deepcopy(row) if row is not None else None

    def _update_row(
        self, table: str, record_id: str, apply: Callable[[dict], dict]
    ) -> dict:
        with self._lock:
            rows = self._tables[table]
            if record_id not in rows:
                raise RecordNotFoundError(f"{table}/{record_id} not found")
            updated = apply(copy.deepcopy(rows[record_id]))
            rows[record_id] = updated
            return copy.deepcopy(updated)

    def _scan(self, table: str, session_id: Optional[str] = None) -> list[dict]:
        with self._lock:
            return [copy.deepcopy(row) for row in self._tables[table].values()]

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._tables[table])
