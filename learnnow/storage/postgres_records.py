"""Postgres-backed record store for the REST resources.

Plain psycopg + SQL, one table per resource (see ``resources.py``). Validation
runs before any write; batch inserts happen in a single transaction so a bad
record rejects the whole batch.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import psycopg
from psycopg.types.json import Jsonb

from learnnow.storage.resources import (
    ResourceSpec,
    ValidationError,
    check_update_body,
    get_resource,
    merge_changes,
    parse_record_id,
    validate_record,
)

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Custom exception for record store operations"""


class ValidationFailed(StoreError):
    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class RecordNotFound(StoreError):
    def __init__(self, resource: str, record_id: Any):
        super().__init__(f"{resource} {record_id!r} not found")
        self.resource = resource
        self.record_id = record_id


def validate_batch(res: ResourceSpec, records: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Validate every record up front; the first violation rejects the batch."""
    out: List[Dict[str, Any]] = []
    for i, rec in enumerate(records):
        if not isinstance(rec, Mapping):
            raise ValidationFailed(f"Record {i}: expected an object")
        try:
            out.append(validate_record(res, rec))
        except ValidationError as e:
            raise ValidationFailed(f"Record {i}: {e}") from e
    return out


class PostgresRecordStore:
    def __init__(self, pg_dsn: str):
        self.pg_dsn = pg_dsn

    def _connect(self, **kwargs):
        try:
            return psycopg.connect(self.pg_dsn, **kwargs)
        except psycopg.Error as e:
            raise StoreError(f"Database connection failed: {e}") from e

    def find_all(self, resource: str) -> List[Dict[str, Any]]:
        res = get_resource(resource)
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(f"SELECT {', '.join(res.columns)} FROM {res.table} ORDER BY id")
                    rows = cur.fetchall()
        except psycopg.Error as e:
            raise StoreError(f"Failed to list {res.name}: {e}") from e
        return [self._row_to_record(res, row) for row in rows]

    def find_by_id(self, resource: str, record_id: Any) -> Dict[str, Any]:
        res = get_resource(resource)
        rid = self._require_id(res, record_id)
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(f"SELECT {', '.join(res.columns)} FROM {res.table} WHERE id = %s", (rid,))
                    row = cur.fetchone()
        except psycopg.Error as e:
            raise StoreError(f"Failed to read {res.label} {rid}: {e}") from e
        if row is None:
            raise RecordNotFound(res.label, record_id)
        return self._row_to_record(res, row)

    def create(self, resource: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        res = get_resource(resource)
        try:
            record = validate_record(res, data)
        except ValidationError as e:
            raise ValidationFailed(str(e)) from e
        return self._insert(res, [record])[0]

    def insert_many(self, resource: str, records: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        """Insert a batch all-or-nothing and return the stored records in input order."""
        res = get_resource(resource)
        validated = validate_batch(res, records)
        if not validated:
            return []
        return self._insert(res, validated)

    def update(self, resource: str, record_id: Any, changes: Mapping[str, Any]) -> Dict[str, Any]:
        res = get_resource(resource)
        rid = self._require_id(res, record_id)
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"SELECT {', '.join(res.columns)} FROM {res.table} WHERE id = %s FOR UPDATE",
                        (rid,),
                    )
                    row = cur.fetchone()
                    if row is None:
                        raise RecordNotFound(res.label, record_id)
                    current = self._row_to_record(res, row)
                    try:
                        check_update_body(res, changes)
                        record = validate_record(res, merge_changes(res, current, changes))
                    except ValidationError as e:
                        raise ValidationFailed(str(e)) from e
                    assignments = ", ".join(f"{f} = %s" for f in res.fields)
                    cur.execute(
                        f"UPDATE {res.table} SET {assignments}, updated_at = now() "
                        f"WHERE id = %s RETURNING {', '.join(res.columns)}",
                        self._params(res, record) + [rid],
                    )
                    updated = cur.fetchone()
        except psycopg.IntegrityError as e:
            raise ValidationFailed(self._integrity_detail(e)) from e
        except psycopg.DataError as e:
            raise ValidationFailed(self._data_detail(e)) from e
        except psycopg.Error as e:
            raise StoreError(f"Failed to update {res.label} {rid}: {e}") from e
        return self._row_to_record(res, updated)

    def delete(self, resource: str, record_id: Any) -> Dict[str, Any]:
        res = get_resource(resource)
        rid = self._require_id(res, record_id)
        try:
            with self._connect(autocommit=True) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"DELETE FROM {res.table} WHERE id = %s RETURNING {', '.join(res.columns)}",
                        (rid,),
                    )
                    row = cur.fetchone()
        except psycopg.Error as e:
            raise StoreError(f"Failed to delete {res.label} {rid}: {e}") from e
        if row is None:
            raise RecordNotFound(res.label, record_id)
        return self._row_to_record(res, row)

    def _insert(self, res: ResourceSpec, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        placeholders = ", ".join(["%s"] * len(res.fields))
        sql = (
            f"INSERT INTO {res.table} ({', '.join(res.fields)}) VALUES ({placeholders}) "
            f"RETURNING {', '.join(res.columns)}"
        )
        out: List[Dict[str, Any]] = []
        try:
            # Non-autocommit: the connection context commits once, or rolls back everything.
            with self._connect() as conn:
                with conn.cursor() as cur:
                    for rec in records:
                        cur.execute(sql, self._params(res, rec))
                        out.append(self._row_to_record(res, cur.fetchone()))
        except psycopg.IntegrityError as e:
            raise ValidationFailed(self._integrity_detail(e)) from e
        except psycopg.DataError as e:
            raise ValidationFailed(self._data_detail(e)) from e
        except psycopg.Error as e:
            raise StoreError(f"Failed to insert into {res.table}: {e}") from e
        logger.debug("Inserted %d %s", len(out), res.name)
        return out

    def _params(self, res: ResourceSpec, record: Mapping[str, Any]) -> List[Any]:
        params: List[Any] = []
        for f in res.fields:
            value = record.get(f)
            if f in res.json_fields and value is not None:
                value = Jsonb(value)
            params.append(value)
        return params

    def _require_id(self, res: ResourceSpec, record_id: Any) -> int:
        rid = parse_record_id(record_id)
        if rid is None:
            raise RecordNotFound(res.label, record_id)
        return rid

    @staticmethod
    def _data_detail(e: psycopg.DataError) -> str:
        # Out-of-range or malformed values rejected by Postgres.
        first = str(e).strip().splitlines()[0] if str(e).strip() else ""
        return first or "Record contains an invalid value"

    @staticmethod
    def _integrity_detail(e: psycopg.IntegrityError) -> str:
        diag = getattr(e, "diag", None)
        column = getattr(diag, "column_name", None) if diag else None
        if column:
            return f"{column.capitalize()} is required"
        return str(e).strip().splitlines()[0] if str(e).strip() else "Record violates a table constraint"

    def _row_to_record(self, res: ResourceSpec, row: Optional[Sequence[Any]]) -> Dict[str, Any]:
        # Row ordering matches res.columns.
        record = dict(zip(res.columns, row or ()))
        record["id"] = int(record["id"])
        for f in res.float_fields:
            if record.get(f) is not None:
                record[f] = float(record[f])
        return record
