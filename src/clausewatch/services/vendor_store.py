"""
Persistence for tracked vendors and their append-only audit trail.

The monitor only talks to the `VendorStore` interface; `SqlVendorStore` is the
SQLAlchemy implementation opened once at process start and closed at shutdown.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
import json
import logging
from typing import Any, Iterator

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from clausewatch.db import Base, create_db_engine, create_session_factory
from clausewatch.errors import DuplicateVendorError, PersistenceError
from clausewatch.models import AuditLog, Vendor
from clausewatch.schemas import Scorecard

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TrackedVendor:
    id: str
    url: str
    hostname: str
    name: str | None = None
    latest_scorecard: Any = None
    previous_scorecard: Any = None
    latest_scan_at: datetime | None = None
    previous_scan_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "hostname": self.hostname,
            "name": self.name,
            "latestScorecard": self.latest_scorecard,
            "previousScorecard": self.previous_scorecard,
            "latestScanAt": self.latest_scan_at.isoformat() if self.latest_scan_at else None,
            "previousScanAt": self.previous_scan_at.isoformat() if self.previous_scan_at else None,
        }


@dataclass(slots=True, frozen=True)
class AuditEvent:
    vendor_id: str
    event_type: str
    summary: str
    diff: dict[str, Any]
    scorecard_snapshot: dict[str, Any]
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "vendorId": self.vendor_id,
            "eventType": self.event_type,
            "summary": self.summary,
            "diff": self.diff,
            "scorecard": self.scorecard_snapshot,
            "createdAt": self.created_at.isoformat(),
        }


class VendorStore:
    def open(self) -> "VendorStore":
        return self

    def close(self) -> None:
        return None

    def __enter__(self) -> "VendorStore":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    def add_vendor(self, url: str, hostname: str, name: str | None = None) -> TrackedVendor:
        raise NotImplementedError

    def list_vendors(self) -> list[TrackedVendor]:
        raise NotImplementedError

    def get_vendor(self, vendor_id: str) -> TrackedVendor | None:
        raise NotImplementedError

    def find_stale_vendors(self, stale_before: datetime, limit: int) -> list[TrackedVendor]:
        """Vendors never scanned or last scanned before `stale_before`, never-scanned first, then oldest."""
        raise NotImplementedError

    def rotate_scorecard(self, vendor_id: str, scorecard: Scorecard, scanned_at: datetime) -> None:
        """previous := latest (scorecard and timestamp), latest := the new scorecard at `scanned_at`."""
        raise NotImplementedError

    def append_audit_event(self, event: AuditEvent) -> None:
        raise NotImplementedError

    def list_audit_events(self, vendor_id: str) -> list[AuditEvent]:
        raise NotImplementedError


def _encode_blob(data: Any) -> str:
    return json.dumps(data, ensure_ascii=True, default=str)


def _decode_blob(value: str | None) -> Any:
    # Undecodable blobs are passed through as text so the scorecard boundary rejects them loudly.
    if not value:
        return None
    try:
        return json.loads(value)
    except ValueError:
        return value


def _to_tracked(row: Vendor) -> TrackedVendor:
    return TrackedVendor(
        id=row.id,
        url=row.url,
        hostname=row.hostname,
        name=row.name,
        latest_scorecard=_decode_blob(row.latest_scorecard_json),
        previous_scorecard=_decode_blob(row.previous_scorecard_json),
        latest_scan_at=row.latest_scan_at,
        previous_scan_at=row.previous_scan_at,
    )


def _to_event(row: AuditLog) -> AuditEvent:
    return AuditEvent(
        vendor_id=row.vendor_id,
        event_type=row.event_type,
        summary=row.summary,
        diff=_decode_blob(row.diff_json) or {},
        scorecard_snapshot=_decode_blob(row.scorecard_json) or {},
        created_at=row.created_at,
    )


class SqlVendorStore(VendorStore):
    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        self.engine = None
        self._sessions: sessionmaker | None = None

    def open(self) -> "SqlVendorStore":
        if self.engine is not None:
            return self
        try:
            self.engine = create_db_engine(self.database_url)
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not open vendor store: {exc}") from exc
        self._sessions = create_session_factory(self.engine)
        return self

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self._sessions = None

    @contextmanager
    def _session(self) -> Iterator[Session]:
        if self._sessions is None:
            raise PersistenceError("Vendor store is not open")
        db = self._sessions()
        try:
            yield db
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(f"{exc.__class__.__name__}: {exc}") from exc
        finally:
            db.close()

    def add_vendor(self, url: str, hostname: str, name: str | None = None) -> TrackedVendor:
        with self._session() as db:
            row = Vendor(url=url, hostname=hostname, name=name)
            db.add(row)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateVendorError(f"Vendor URL is already tracked: {url}") from exc
            db.refresh(row)
            logger.info("Tracking vendor %s (%s)", row.id, url)
            return _to_tracked(row)

    def list_vendors(self) -> list[TrackedVendor]:
        with self._session() as db:
            rows = db.execute(select(Vendor).order_by(Vendor.created_at.desc())).scalars().all()
            return [_to_tracked(row) for row in rows]

    def get_vendor(self, vendor_id: str) -> TrackedVendor | None:
        with self._session() as db:
            row = db.get(Vendor, vendor_id)
            return _to_tracked(row) if row else None

    def find_stale_vendors(self, stale_before: datetime, limit: int) -> list[TrackedVendor]:
        with self._session() as db:
            rows = (
                db.execute(
                    select(Vendor)
                    .where(or_(Vendor.latest_scan_at.is_(None), Vendor.latest_scan_at < stale_before))
                    .order_by(Vendor.latest_scan_at.asc().nulls_first(), Vendor.created_at.asc())
                    .limit(int(limit))
                )
                .scalars()
                .all()
            )
            return [_to_tracked(row) for row in rows]

    def rotate_scorecard(self, vendor_id: str, scorecard: Scorecard, scanned_at: datetime) -> None:
        with self._session() as db:
            row = db.get(Vendor, vendor_id)
            if row is None:
                raise PersistenceError(f"Unknown vendor: {vendor_id}")
            row.previous_scorecard_json = row.latest_scorecard_json
            row.previous_scan_at = row.latest_scan_at
            row.latest_scorecard_json = _encode_blob(scorecard.to_payload())
            row.latest_scan_at = scanned_at
            db.commit()

    def append_audit_event(self, event: AuditEvent) -> None:
        with self._session() as db:
            db.add(
                AuditLog(
                    vendor_id=event.vendor_id,
                    event_type=event.event_type,
                    summary=event.summary,
                    diff_json=_encode_blob(event.diff),
                    scorecard_json=_encode_blob(event.scorecard_snapshot),
                    created_at=event.created_at,
                )
            )
            db.commit()

    def list_audit_events(self, vendor_id: str) -> list[AuditEvent]:
        with self._session() as db:
            rows = (
                db.execute(
                    select(AuditLog).where(AuditLog.vendor_id == vendor_id).order_by(AuditLog.created_at.asc())
                )
                .scalars()
                .all()
            )
            return [_to_event(row) for row in rows]
