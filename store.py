"""Record Store collaborator.

Every store speaks the same request/response shapes:

    fetch_records(kind, query)         -> {"success", "data": [...], "message"?}
    get_record_by_id(kind, id, query)  -> {"success", "data": {...} | None}
    create_record(kind, {"records": [payload]})
    update_record(kind, {"records": [payload]})
        -> {"success", "message"?, "results": [{"success", "data"?, "errors"?, "message"?}]}
    delete_record(kind, {"RecordIds": [id]})
        -> {"success", "results": [{"success", "message"?}]}

Updates merge the given fields into the stored record; fields left out keep
their stored value.

``success`` on the envelope reports whether the call itself went through;
``success`` inside ``results`` reports what happened to each record.
"""
import abc
import copy
import itertools
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

from errors import StoreError, ValidationError
from normalizer import storage_fields

_LOGGER = logging.getLogger(__name__)

EQUAL_TO = "EqualTo"

_COMPARATORS = {
    "GreaterThan": lambda a, b: a > b,
    "GreaterThanOrEqualTo": lambda a, b: a >= b,
    "LessThan": lambda a, b: a < b,
    "LessThanOrEqualTo": lambda a, b: a <= b,
}


def build_query(kind: str, where: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    query: Dict[str, Any] = {
        "fields": [{"field": {"Name": name}} for name in storage_fields(kind) if name != "Id"]
    }
    if where:
        query["where"] = where
    return query


def equal_to(field: str, value: Any) -> Dict[str, Any]:
    return {"FieldName": field, "Operator": EQUAL_TO, "Values": [str(value)]}


def matches(record: Dict[str, Any], clause: Dict[str, Any]) -> bool:
    value = record.get(clause["FieldName"])
    values = clause.get("Values") or []
    operator = clause.get("Operator", EQUAL_TO)
    if operator == EQUAL_TO:
        return value is not None and str(value) in values
    compare = _COMPARATORS.get(operator)
    if compare is None:
        raise StoreError(f"Unsupported operator: {operator}")
    try:
        return compare(float(value), float(values[0]))
    except (TypeError, ValueError, IndexError):
        return False


def project(record: Dict[str, Any], query: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not query or not query.get("fields"):
        return copy.deepcopy(record)
    names = {f["field"]["Name"] for f in query["fields"]}
    names.add("Id")
    return {k: copy.deepcopy(v) for k, v in record.items() if k in names}


def select(records, query: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    clauses = (query or {}).get("where") or []
    return [project(r, query) for r in records if all(matches(r, c) for c in clauses)]


def unwrap_single(response: Optional[Dict[str, Any]], action: str) -> Dict[str, Any]:
    """Return the one record of a batch-of-one write.

    A failed call raises StoreError (retry). A call that went through but
    rejected the record raises ValidationError with the store's field errors
    (fix the input).
    """
    if not response or not response.get("success"):
        message = (response or {}).get("message") or f"Failed to {action}"
        raise StoreError(message)

    results = response.get("results") or []
    if not results:
        raise StoreError(f"No data returned from {action} operation")

    result = results[0]
    if not result.get("success"):
        field_errors = {
            err.get("fieldLabel") or "record": err.get("message") or "invalid"
            for err in result.get("errors") or []
        }
        if not field_errors:
            field_errors = {"record": result.get("message") or f"Failed to {action}"}
        _LOGGER.error("Store rejected %s: %s", action, field_errors)
        raise ValidationError(field_errors, message=result.get("message"))

    return result.get("data") or {}


class RecordStore(abc.ABC):
    @abc.abstractmethod
    async def fetch_records(self, kind: str, query: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        ...

    @abc.abstractmethod
    async def get_record_by_id(self, kind: str, record_id: int, query: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        ...

    @abc.abstractmethod
    async def create_record(self, kind: str, params: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abc.abstractmethod
    async def update_record(self, kind: str, params: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abc.abstractmethod
    async def delete_record(self, kind: str, params: Dict[str, Any]) -> Dict[str, Any]:
        ...


class InMemoryRecordStore(RecordStore):
    """Dict-backed store for tests and local runs.

    Ids come from one counter and are never handed out twice. Records go in
    and come out as copies.
    """

    def __init__(self):
        self._tables: Dict[str, Dict[int, Dict[str, Any]]] = defaultdict(dict)
        self._ids = itertools.count(1)
        self._call_failures: List[str] = []
        self._rejections: List[Dict[str, Any]] = []
        self.calls: List[tuple] = []

    # ---------- failure injection ----------
    def fail_next_call(self, message: str = "Service unavailable") -> None:
        self._call_failures.append(message)

    def reject_next_record(self, errors: Optional[List[Dict[str, str]]] = None, message: Optional[str] = None) -> None:
        self._rejections.append({"success": False, "errors": errors or [], "message": message})

    def rows(self, kind: str) -> List[Dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._tables[kind].values()]

    def _failed_call(self, method: str, kind: str) -> Optional[Dict[str, Any]]:
        self.calls.append((method, kind))
        if self._call_failures:
            return {"success": False, "message": self._call_failures.pop(0)}
        return None

    # ---------- RecordStore ----------
    async def fetch_records(self, kind, query=None):
        failed = self._failed_call("fetch", kind)
        if failed:
            return failed
        return {"success": True, "data": select(self._tables[kind].values(), query)}

    async def get_record_by_id(self, kind, record_id, query=None):
        failed = self._failed_call("get", kind)
        if failed:
            return failed
        record = self._tables[kind].get(record_id)
        return {"success": True, "data": project(record, query) if record is not None else None}

    async def create_record(self, kind, params):
        failed = self._failed_call("create", kind)
        if failed:
            return failed
        results = []
        for payload in params.get("records", []):
            if self._rejections:
                results.append(self._rejections.pop(0))
                continue
            record = copy.deepcopy(payload)
            record["Id"] = next(self._ids)
            self._tables[kind][record["Id"]] = record
            results.append({"success": True, "data": copy.deepcopy(record)})
        return {"success": True, "results": results}

    async def update_record(self, kind, params):
        failed = self._failed_call("update", kind)
        if failed:
            return failed
        results = []
        table = self._tables[kind]
        for payload in params.get("records", []):
            if self._rejections:
                results.append(self._rejections.pop(0))
                continue
            record_id = payload.get("Id")
            if record_id not in table:
                results.append({"success": False, "message": f"Record {record_id} not found"})
                continue
            table[record_id].update(copy.deepcopy(payload))
            results.append({"success": True, "data": copy.deepcopy(table[record_id])})
        return {"success": True, "results": results}

    async def delete_record(self, kind, params):
        failed = self._failed_call("delete", kind)
        if failed:
            return failed
        results = []
        table = self._tables[kind]
        for record_id in params.get("RecordIds", []):
            if table.pop(record_id, None) is None:
                results.append({"success": False, "message": f"Record {record_id} not found"})
            else:
                results.append({"success": True})
        return {"success": True, "results": results}
