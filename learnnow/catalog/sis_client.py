"""Client for the university Student Information System (SIS) class catalog.

Two read-only calls are used:
- ``GET {base_url}/codes/schools?key=...``: the list of schools (units)
- ``GET {base_url}/{school}/current?key=...``: current offerings for one school

No retry or backoff happens here; callers decide what to do with a failure.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, List, Optional
from urllib.parse import quote

import requests

from learnnow.catalog.catalog_types import Offering, Unit

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://sis.jhu.edu/api/classes"
DEFAULT_TIMEOUT_MS = 30000


class SourceUnavailable(Exception):
    """The catalog source could not be reached or answered with an error."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class CatalogConfig:
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout_ms: int = DEFAULT_TIMEOUT_MS

    @classmethod
    def from_env(cls) -> "CatalogConfig":
        try:
            timeout_ms = int(os.environ.get("SIS_TIMEOUT_MS", DEFAULT_TIMEOUT_MS))
        except (TypeError, ValueError):
            timeout_ms = DEFAULT_TIMEOUT_MS
        return cls(
            api_key=os.environ.get("SIS_API_KEY", "").strip(),
            base_url=(os.environ.get("SIS_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
            timeout_ms=max(1, timeout_ms),
        )

    def __repr__(self) -> str:
        # Keep the key out of logs and tracebacks.
        return f"CatalogConfig(api_key='***', base_url={self.base_url!r}, timeout_ms={self.timeout_ms})"


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


class SISCatalogClient:
    name: str = "sis"

    def __init__(self, config: CatalogConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    def list_units(self) -> List[Unit]:
        data = self._get_json("/codes/schools")
        out: List[Unit] = []
        for item in data:
            if isinstance(item, dict):
                name = item.get("Name")
                raw = item
            else:
                name, raw = item, None
            if name is None or not str(name).strip():
                logger.warning("Skipping catalog unit without a name: %r", item)
                continue
            out.append(Unit(name=str(name), raw=raw))
        return out

    def list_offerings(self, unit: Unit) -> List[Offering]:
        data = self._get_json(f"/{quote(unit.name, safe='')}/current")
        out: List[Offering] = []
        for c in data:
            if not isinstance(c, dict):
                raise SourceUnavailable(f"Malformed offering for {unit.name}: expected object, got {type(c).__name__}")
            out.append(
                Offering(
                    title=_text(c.get("Title")),
                    department=_text(c.get("Department")),
                    offering_name=_text(c.get("OfferingName")),
                    section_name=_text(c.get("SectionName")),
                    term=_text(c.get("Term_IDR")),
                    instructor=_text(c.get("InstructorsFullName")),
                    raw=c,
                )
            )
        return out

    def _get_json(self, path: str) -> List[Any]:
        url = f"{self.config.base_url}{path}"
        try:
            resp = self.session.get(
                url,
                params={"key": self.config.api_key},
                headers={"Accept": "application/json", "User-Agent": "LearnNow/1.0"},
                timeout=self.config.timeout_ms / 1000.0,
            )
        except requests.RequestException as e:
            # requests embeds the full url (with the key) in its messages
            raise SourceUnavailable(f"GET {path} failed: {type(e).__name__}") from e

        if not 200 <= resp.status_code < 300:
            raise SourceUnavailable(f"GET {path} returned HTTP {resp.status_code}", status_code=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise SourceUnavailable(f"GET {path} returned a non-JSON body") from e
        if data is None:
            return []
        if not isinstance(data, list):
            raise SourceUnavailable(f"GET {path} returned {type(data).__name__}, expected a list")
        return data
