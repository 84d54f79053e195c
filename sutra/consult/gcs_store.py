"""
GCS Consult Store — one JSON document per row, stored in GCS.

Storage paths:
    gs://{bucket}/{prefix}/{table}/{id}.json               (global tables)
    gs://{bucket}/{prefix}/{table}/{session_id}/{id}.json  (session-scoped)

Session-scoped rows (participants, messages, referrals) are keyed under
their session, the way diary blobs are keyed per patient, so the lookups
the core makes on every request (participant checks, history, referral
redemption) only read that session's objects.

Uses GCS generation-match for optimistic locking, same as the bucket
manager's other documents: creates require ``if_generation_match=0`` (the
object must not exist yet); updates capture the generation on read and
require it to be unchanged on write.  A lost update race is retried once
against the fresh row before surfacing as StoreConflictError.
"""

from __future__ import annotations

import json
import logging
from typing import Callable, Optional

from sutra.consult.store import (
    ConsultStore,
    RecordNotFoundError,
    StoreConflictError,
    StoreError,
    StoreWriteError,
)

logger = logging.getLogger("consult.store")


def _is_precondition_failure(e: Exception) -> bool:
    return "conditionNotMet" in str(e) or "Precondition" in str(e) or type(e).__name__ == "PreconditionFailed"


def _is_not_found(e: Exception) -> bool:
    err_type = type(e).__name__.lower()
    err_msg = str(e).lower()
    return "notfound" in err_type or "not found" in err_msg or "notfound" in err_msg


# Tables whose rows live under {table}/{session_id}/
SESSION_SCOPED_TABLES = frozenset({"session_participants", "messages", "referrals"})


class GCSConsultStore(ConsultStore):
    """Persists consultation rows to GCS via GCSBucketManager."""

    # HTTP timeout for individual GCS operations (seconds)
    GCS_TIMEOUT = 30
    UPDATE_ATTEMPTS = 2

    def __init__(self, gcs_bucket_manager, prefix: str = "sutra") -> None:
        super().__init__()
        self._gcs = gcs_bucket_manager
        self._prefix = prefix.strip("/")
        # (table, id) → blob path for session-scoped rows seen by this process
        self._paths: dict[tuple[str, str], str] = {}

    def _table_prefix(self, table: str) -> str:
        return f"{self._prefix}/{table}/"

    def _blob_path(self, table: str, row: dict) -> str:
        if table in SESSION_SCOPED_TABLES:
            return f"{self._table_prefix(table)}{row['session_id']}/{row['id']}.json"
        return f"{self._table_prefix(table)}{row['id']}.json"

    def _locate(self, table: str, record_id: str) -> Optional[str]:
        """
        Blob path of a row known only by id.

        Session-scoped rows are found through the cache, falling back to a
        listing (names only, no downloads) of the table.
        """
        if table not in SESSION_SCOPED_TABLES:
            return f"{self._table_prefix(table)}{record_id}.json"
        path = self._paths.get((table, record_id))
        if path is not None:
            return path
        suffix = f"/{record_id}.json"
        for blob in self._list(self._table_prefix(table)):
            if blob.name.endswith(suffix):
                self._paths[(table, record_id)] = blob.name
                return blob.name
        return None

    def _list(self, prefix: str):
        try:
            return self._gcs.list_blobs(prefix)
        except Exception as e:
            raise StoreError(f"Failed to list {prefix}: {e}") from e

    def _read(self, path: str) -> tuple[Optional[dict], int]:
        """Returns (row, generation).  Row is None when the object is absent."""
        try:
            blob = self._gcs.blob(path)
            content = blob.download_as_text(timeout=self.GCS_TIMEOUT)
            return json.loads(content), blob.generation or 0
        except Exception as e:
            if _is_not_found(e):
                return None, 0
            raise StoreError(f"Failed to read {path}: {e}") from e

    # ── Raw row primitives ──

    def _create_row(self, table: str, row: dict) -> None:
        path = self._blob_path(table, row)
        try:
            blob = self._gcs.blob(path)
            blob.upload_from_string(
                json.dumps(row),
                content_type="application/json",
                if_generation_match=0,
                timeout=self.GCS_TIMEOUT,
            )
        except Exception as e:
            if _is_precondition_failure(e):
                raise StoreConflictError(f"{table}/{row['id']} already exists") from e
            raise StoreWriteError(f"Failed to write {path}: {e}") from e
        if table in SESSION_SCOPED_TABLES:
            self._paths[(table, row["id"])] = path

    def _load_row(self, table: str, record_id: str) -> Optional[dict]:
        path = self._locate(table, record_id)
        if path is None:
            return None
        row, _ = self._read(path)
        return row

    def _update_row(
        self, table: str, record_id: str, apply: Callable[[dict], dict]
    ) -> dict:
        path = self._locate(table, record_id)
        if path is None:
            raise RecordNotFoundError(f"{table}/{record_id} not found")
        for attempt in range(1, self.UPDATE_ATTEMPTS + 1):
            row, generation = self._read(path)
            if row is None:
                raise RecordNotFoundError(f"{table}/{record_id} not found")
            updated = apply(row)
            try:
                blob = self._gcs.blob(path)
                blob.upload_from_string(
                    json.dumps(updated),
                    content_type="application/json",
                    if_generation_match=generation,
                    timeout=self.GCS_TIMEOUT,
                )
                return updated
            except Exception as e:
                if not _is_precondition_failure(e):
                    raise StoreWriteError(f"Failed to write {path}: {e}") from e
                logger.warning(
                    "Concurrent update on %s (attempt %d/%d)",
                    path, attempt, self.UPDATE_ATTEMPTS,
                )
        raise StoreConflictError(f"{table}/{record_id} was modified by another writer")

    def _scan(self, table: str, session_id: Optional[str] = None) -> list[dict]:
        prefix = self._table_prefix(table)
        if session_id and table in SESSION_SCOPED_TABLES:
            prefix = f"{prefix}{session_id}/"

        rows = []
        for blob in self._list(prefix):
            if not blob.name.endswith(".json"):
                continue
            try:
                row = json.loads(blob.download_as_text(timeout=self.GCS_TIMEOUT))
            except Exception as e:
                # Deleted between list and download
                if _is_not_found(e):
                    continue
                raise StoreError(f"Failed to read {blob.name}: {e}") from e
            if table in SESSION_SCOPED_TABLES:
                self._paths[(table, row["id"])] = blob.name
            rows.append(row)
        return rows
