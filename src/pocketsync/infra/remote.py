"""HTTP implementation of the remote record service using requests."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping, Optional

import requests

from ..config import BaseConfig
from ..errors import RemoteUnreachable, VersionConflict
from ..logging_config import get_logger
from ..models.types import EntityKey

logger = get_logger("infra.remote")

# local field name -> wire field name
RECORD_WIRE_FIELDS = {"kind": "type", "note": "description", "occurred_on": "transaction_date"}
CATEGORY_WIRE_FIELDS = {"kind": "type"}

# local field name -> {local value: wire value}; the server calls inflow "withdrawal"
KIND_WIRE_VALUES = {"kind": {"income": "withdrawal", "expense": "expense"}}

# Server-owned fields never sent on create/update
_SERVER_FIELDS = ("id", "created_at", "updated_at")


def _translate(values: Optional[Mapping[str, str]], value: Any) -> Any:
    if values is None or not isinstance(value, str):
        return value
    plain = value.value if isinstance(value, Enum) else value
    return values.get(plain, plain)


def build_http_session(config: BaseConfig) -> requests.Session:
    """Create a requests session with JSON and optional bearer auth headers."""

    session = requests.Session()
    session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})
    if config.API_TOKEN:
        session.headers["Authorization"] = f"Bearer {config.API_TOKEN}"
    return session


class HttpRecordService:
    """REST client for one collection (``GET/POST base``, ``GET/PUT/DELETE base/{id}``)."""

    def __init__(
        self,
        base_url: str,
        *,
        wire_fields: Optional[Mapping[str, str]] = None,
        wire_values: Optional[Mapping[str, Mapping[str, str]]] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self._to_wire_names = dict(wire_fields or {})
        self._from_wire_names = {wire: local for local, wire in self._to_wire_names.items()}
        self._to_wire_values = {field: dict(values) for field, values in (wire_values or {}).items()}
        self._from_wire_values = {
            field: {wire: local for local, wire in values.items()}
            for field, values in self._to_wire_values.items()
        }

    # ------------------------------------------------------------------ mapping

    def to_wire(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        return {
            self._to_wire_names.get(key, key): _translate(self._to_wire_values.get(key), value)
            for key, value in payload.items()
        }

    def from_wire(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        renamed = {self._from_wire_names.get(key, key): value for key, value in payload.items()}
        return {
            key: _translate(self._from_wire_values.get(key), value) for key, value in renamed.items()
        }

    @staticmethod
    def _writable(payload: Mapping[str, Any]) -> dict[str, Any]:
        return {key: value for key, value in payload.items() if key not in _SERVER_FIELDS}

    # ------------------------------------------------------------------ transport

    def _request(self, method: str, url: str, body: Optional[dict[str, Any]] = None) -> Any:
        try:
            response = self.session.request(method, url, json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning(f"{method} {url} failed: {exc}")
            raise RemoteUnreachable(f"{method} {url} failed: {exc}") from exc

        if response.status_code == 409:
            data = self._decode(response)
            server_version = data.get("serverVersion") if isinstance(data, dict) else None
            raise VersionConflict(
                f"{method} {url} rejected as stale",
                server_version=self.from_wire(server_version)
                if isinstance(server_version, dict)
                else None,
            )
        if not response.ok:
            raise RemoteUnreachable(
                f"{method} {url} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return self._decode(response)

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _unwrap(data: Any) -> Any:
        # Some endpoints wrap results as {"data": ...}
        if isinstance(data, dict) and "data" in data and len(data) <= 2:
            return data["data"]
        return data

    def _item_url(self, entity_id: EntityKey) -> str:
        return f"{self.base_url}/{entity_id}"

    # ------------------------------------------------------------------ CRUD

    def list(self) -> list[dict[str, Any]]:
        data = self._unwrap(self._request("GET", self.base_url))
        if not isinstance(data, list):
            raise RemoteUnreachable(f"GET {self.base_url} returned an unexpected body")
        return [self.from_wire(item) for item in data]

    def get(self, entity_id: EntityKey) -> dict[str, Any]:
        data = self._unwrap(self._request("GET", self._item_url(entity_id)))
        return self.from_wire(data or {})

    def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        data = self._unwrap(self._request("POST", self.base_url, self.to_wire(self._writable(payload))))
        return self.from_wire(data) if isinstance(data, dict) else {}

    def update(self, entity_id: EntityKey, payload: dict[str, Any]) -> dict[str, Any]:
        data = self._unwrap(
            self._request("PUT", self._item_url(entity_id), self.to_wire(self._writable(payload)))
        )
        return self.from_wire(data) if isinstance(data, dict) else {}

    def delete(self, entity_id: EntityKey) -> None:
        self._request("DELETE", self._item_url(entity_id))


def create_remote_services(
    config: BaseConfig, session: Optional[requests.Session] = None
) -> tuple[HttpRecordService, HttpRecordService]:
    """Return ``(records, categories)`` services sharing one HTTP session."""

    session = session or build_http_session(config)
    records = HttpRecordService(
        config.records_url,
        wire_fields=RECORD_WIRE_FIELDS,
        wire_values=KIND_WIRE_VALUES,
        session=session,
        timeout=config.API_TIMEOUT_SECONDS,
    )
    categories = HttpRecordService(
        config.categories_url,
        wire_fields=CATEGORY_WIRE_FIELDS,
        wire_values=KIND_WIRE_VALUES,
        session=session,
        timeout=config.API_TIMEOUT_SECONDS,
    )
    return records, categories


__all__ = [
    "CATEGORY_WIRE_FIELDS",
    "HttpRecordService",
    "KIND_WIRE_VALUES",
    "RECORD_WIRE_FIELDS",
    "build_http_session",
    "create_remote_services",
]
