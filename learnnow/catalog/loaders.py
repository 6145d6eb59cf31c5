"""Bulk loaders: submit one unit's mapped class records as a single batch."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Sequence

import requests

from learnnow.storage.postgres_records import StoreError, ValidationFailed


class BulkLoader(Protocol):
    def insert_batch(self, records: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        ...


class StoreBulkLoader:
    """Writes straight into the record store's ``classes`` table."""

    resource = "classes"

    def __init__(self, store):
        self.store = store

    def insert_batch(self, records: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return self.store.insert_many(self.resource, list(records))


class HttpBulkLoader:
    """Posts the batch to a running API's ``POST /classes/batch-data`` route."""

    def __init__(self, url: str, *, timeout_ms: int = 30000, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout_ms = timeout_ms
        self.session = session or requests.Session()

    def insert_batch(self, records: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        try:
            resp = self.session.post(self.url, json=list(records), timeout=self.timeout_ms / 1000.0)
        except requests.RequestException as e:
            raise StoreError(f"Batch submission to {self.url} failed: {e}") from e

        if resp.status_code == 400:
            raise ValidationFailed(self._message(resp) or "Batch rejected")
        if not 200 <= resp.status_code < 300:
            raise StoreError(f"Batch submission returned HTTP {resp.status_code}: {self._message(resp)}")
        try:
            data = resp.json()
        except ValueError as e:
            raise StoreError("Batch submission returned a non-JSON body") from e
        if not isinstance(data, list):
            raise StoreError(f"Batch submission returned {type(data).__name__}, expected a list")
        return data

    @staticmethod
    def _message(resp: requests.Response) -> Optional[str]:
        try:
            body = resp.json()
        except ValueError:
            return (resp.text or "").strip()[:200] or None
        if isinstance(body, dict):
            return body.get("message") or body.get("error")
        return None
