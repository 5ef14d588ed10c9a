"""Remote document store client."""
import base64
import copy
from typing import List, Optional, Dict, Any, Tuple

import requests

from .config import config, StoreConfig
from .exceptions import (
    EntityNotFoundError, ErpDeskError, NetworkError, StoreError, UnauthorizedError,
)
from .logging_config import get_logger, log_store_operation
from .record_mapper import StoreRecord

logger = get_logger("store")


def _encode_value(value: Any) -> Dict[str, Any]:
    if isinstance(value, (bytes, bytearray)):
        return {"type": "BYTES", "value": base64.b64encode(bytes(value)).decode("ascii")}
    return {"value": value}


def _decode_value(name: str, wire: Dict[str, Any]) -> Any:
    if not isinstance(wire, dict) or "value" not in wire:
        raise StoreError("decode", f"malformed field {name!r}")
    if wire.get("type") == "BYTES":
        try:
            return base64.b64decode(wire["value"])
        except (TypeError, ValueError) as e:
            raise StoreError("decode", f"bad base64 in field {name!r}: {e}")
    return wire["value"]


def record_to_wire(record: StoreRecord) -> Dict[str, Any]:
    return {
        "recordType": record.record_type,
        "recordName": record.record_name,
        "fields": {name: _encode_value(v) for name, v in record.fields.items()},
    }


def record_from_wire(data: Dict[str, Any]) -> StoreRecord:
    try:
        fields = {name: _decode_value(name, v) for name, v in data.get("fields", {}).items()}
        return StoreRecord(
            record_type=data["recordType"],
            record_name=data["recordName"],
            fields=fields,
        )
    except (KeyError, AttributeError) as e:
        raise StoreError("decode", f"malformed record: {e}")


class DocumentStoreClient:
    """Client for the remote document store's JSON web service.

    Records are addressed by ``(record_type, record_name)``. Saves are
    upserts; there is no conditional write, so the last save wins.
    """

    def __init__(self, cfg: Optional[StoreConfig] = None, session: Optional[requests.Session] = None):
        self.config = cfg or config.store
        self.session = session or requests.Session()

    def _url(self, operation: str) -> str:
        base = self.config.endpoint.rstrip("/")
        return f"{base}/{self.config.container}/{self.config.database}/records/{operation}"

    def _send_request(self, operation: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a request and map transport and HTTP failures to domain errors."""
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_token}",
        }

        try:
            response = self.session.post(
                self._url(operation),
                json=payload,
                headers=headers,
                timeout=self.config.timeout
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise NetworkError(str(e))
        except requests.RequestException as e:
            raise StoreError(operation, str(e))

        if response.status_code in (401, 403):
            raise UnauthorizedError(f"HTTP {response.status_code}")
        if response.status_code == 404:
            raise EntityNotFoundError(
                payload.get("recordType", "Record"),
                payload.get("recordName", ""),
            )
        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise StoreError(operation, str(e), status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise StoreError(operation, f"Failed to parse response: {e}", status_code=response.status_code)

    def query(self, record_type: str, sort_by: Optional[str] = None, ascending: bool = True) -> List[StoreRecord]:
        """Fetch every record of a type."""
        payload = {"recordType": record_type}
        if sort_by:
            payload["sortBy"] = [{"fieldName": sort_by, "ascending": ascending}]
        result = self._send_request("query", payload)
        records = [record_from_wire(r) for r in result.get("records", [])]
        log_store_operation(logger, "query", record_type, count=len(records))
        return records

    def fetch(self, record_type: str, record_name: str) -> StoreRecord:
        result = self._send_request("lookup", {"recordType": record_type, "recordName": record_name})
        records = result.get("records", [])
        if not records:
            raise EntityNotFoundError(record_type, record_name)
        log_store_operation(logger, "lookup", record_type, record_name=record_name)
        return record_from_wire(records[0])

    def save(self, record: StoreRecord) -> StoreRecord:
        """Upsert a record and return the stored copy."""
        result = self._send_request("modify", {
            "recordType": record.record_type,
            "recordName": record.record_name,
            "operations": [{"operationType": "forceReplace", "record": record_to_wire(record)}],
        })
        records = result.get("records", [])
        log_store_operation(logger, "save", record.record_type, record_name=record.record_name)
        return record_from_wire(records[0]) if records else record

    def delete(self, record_type: str, record_name: str):
        self._send_request("delete", {"recordType": record_type, "recordName": record_name})
        log_store_operation(logger, "delete", record_type, record_name=record_name)


class InMemoryDocumentStore(DocumentStoreClient):
    """In-process store for tests, demos and offline use.

    ``fail_on`` injects an error for an operation (optionally restricted
    to one record type) until ``clear_failures`` is called.
    """

    def __init__(self, cfg: Optional[StoreConfig] = None):
        super().__init__(cfg)
        self._records: Dict[str, Dict[str, StoreRecord]] = {}
        self._failures: Dict[Tuple[str, Optional[str]], ErpDeskError] = {}
        self.calls: List[Tuple[str, str]] = []

    def fail_on(self, operation: str, record_type: Optional[str] = None, error: Optional[ErpDeskError] = None):
        self._failures[(operation, record_type)] = error or NetworkError("injected failure")

    def clear_failures(self):
        self._failures.clear()

    def _check(self, operation: str, record_type: str):
        self.calls.append((operation, record_type))
        error = self._failures.get((operation, record_type)) or self._failures.get((operation, None))
        if error is not None:
            raise error

    def load_records(self, records: List[StoreRecord]):
        """Seed records without going through failure injection."""
        for record in records:
            self._records.setdefault(record.record_type, {})[record.record_name] = copy.deepcopy(record)

    def query(self, record_type: str, sort_by: Optional[str] = None, ascending: bool = True) -> List[StoreRecord]:
        self._check("query", record_type)
        records = [copy.deepcopy(r) for r in self._records.get(record_type, {}).values()]
        if sort_by:
            records.sort(key=lambda r: (r.fields.get(sort_by) is None, r.fields.get(sort_by) or ""),
                         reverse=not ascending)
        log_store_operation(logger, "query", record_type, count=len(records))
        return records

    def fetch(self, record_type: str, record_name: str) -> StoreRecord:
        self._check("lookup", record_type)
        try:
            return copy.deepcopy(self._records[record_type][record_name])
        except KeyError:
            raise EntityNotFoundError(record_type, record_name)

    def save(self, record: StoreRecord) -> StoreRecord:
        self._check("save", record.record_type)
        stored = copy.deepcopy(record)
        self._records.setdefault(record.record_type, {})[record.record_name] = stored
        log_store_operation(logger, "save", record.record_type, record_name=record.record_name)
        return copy.deepcopy(stored)

    def delete(self, record_type: str, record_name: str):
        self._check("delete", record_type)
        if record_name not in self._records.get(record_type, {}):
            raise EntityNotFoundError(record_type, record_name)
        del self._records[record_type][record_name]
        log_store_operation(logger, "delete", record_type, record_name=record_name)

    def count(self, record_type: str) -> int:
        return len(self._records.get(record_type, {}))

    def _send_request(self, operation: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Override to prevent actual network calls."""
        raise StoreError(operation, "In-memory store - no network calls allowed")


def create_store_client(cfg: Optional[StoreConfig] = None) -> DocumentStoreClient:
    """Remote client when an endpoint is configured, otherwise the in-memory store."""
    cfg = cfg or config.store
    if cfg.is_configured():
        return DocumentStoreClient(cfg)
    logger.info("No document store endpoint configured; using in-memory store")
    return InMemoryDocumentStore(cfg)
