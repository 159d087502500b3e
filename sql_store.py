import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select as sa_select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from database import Base, SessionLocal
from models import Record
from store import RecordStore, project, select
from utils import isoformat, utcnow

_LOGGER = logging.getLogger(__name__)


def _as_dict(row: Record) -> Dict[str, Any]:
    data = json.loads(row.payload)
    data["Id"] = row.id
    return data


class SqlRecordStore(RecordStore):
    """Record store on SQLAlchemy.

    Session work is blocking, so each call runs in a worker thread with its
    own session. Database errors come back as a failed call, like a remote
    store that could not be reached.
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    def init_schema(self) -> None:
        Base.metadata.create_all(bind=self._session_factory.kw["bind"])

    async def _run(self, fn, *args) -> Dict[str, Any]:
        return await asyncio.to_thread(self._guarded, fn, *args)

    def _guarded(self, fn, *args) -> Dict[str, Any]:
        db = self._session_factory()
        try:
            return fn(db, *args)
        except SQLAlchemyError as err:
            db.rollback()
            _LOGGER.error("Record store call %s failed: %s", fn.__name__, err)
            return {"success": False, "message": "Record store unavailable"}
        finally:
            db.close()

    # ---------- RecordStore ----------
    async def fetch_records(self, kind, query=None):
        return await self._run(self._fetch, kind, query)

    async def get_record_by_id(self, kind, record_id, query=None):
        return await self._run(self._get, kind, record_id, query)

    async def create_record(self, kind, params):
        return await self._run(self._create, kind, params.get("records", []))

    async def update_record(self, kind, params):
        return await self._run(self._update, kind, params.get("records", []))

    async def delete_record(self, kind, params):
        return await self._run(self._delete, kind, params.get("RecordIds", []))

    # ---------- session work ----------
    def _fetch(self, db: Session, kind: str, query: Optional[Dict[str, Any]]):
        rows = db.scalars(sa_select(Record).where(Record.kind == kind).order_by(Record.id.asc())).all()
        return {"success": True, "data": select([_as_dict(r) for r in rows], query)}

    def _get(self, db: Session, kind: str, record_id: int, query: Optional[Dict[str, Any]]):
        row = db.get(Record, record_id)
        if row is None or row.kind != kind:
            return {"success": True, "data": None}
        return {"success": True, "data": project(_as_dict(row), query)}

    def _create(self, db: Session, kind: str, payloads: List[Dict[str, Any]]):
        now = isoformat(utcnow())
        rows = []
        for payload in payloads:
            body = {k: v for k, v in payload.items() if k != "Id"}
            row = Record(kind=kind, payload=json.dumps(body), created_at=now, updated_at=now)
            db.add(row)
            rows.append(row)
        db.commit()
        results = []
        for row in rows:
            db.refresh(row)
            results.append({"success": True, "data": _as_dict(row)})
        return {"success": True, "results": results}

    def _update(self, db: Session, kind: str, payloads: List[Dict[str, Any]]):
        now = isoformat(utcnow())
        results = []
        touched = []
        for payload in payloads:
            record_id = payload.get("Id")
            row = db.get(Record, record_id) if isinstance(record_id, int) else None
            if row is None or row.kind != kind:
                results.append({"success": False, "message": f"Record {record_id} not found"})
                continue
            body = json.loads(row.payload)
            body.update({k: v for k, v in payload.items() if k != "Id"})
            row.payload = json.dumps(body)
            row.updated_at = now
            touched.append((len(results), row))
            results.append(None)
        db.commit()
        for index, row in touched:
            db.refresh(row)
            results[index] = {"success": True, "data": _as_dict(row)}
        return {"success": True, "results": results}

    def _delete(self, db: Session, kind: str, record_ids: List[int]):
        results = []
        for record_id in record_ids:
            row = db.get(Record, record_id)
            if row is None or row.kind != kind:
                results.append({"success": False, "message": f"Record {record_id} not found"})
                continue
            db.delete(row)
            results.append({"success": True})
        db.commit()
        return {"success": True, "results": results}
