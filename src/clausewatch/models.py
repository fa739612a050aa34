from datetime import datetime
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from clausewatch.db import Base


def _new_id() -> str:
    return uuid4().hex


class Vendor(Base):
    __tablename__ = "vendors"
    __table_args__ = (Index("ix_vendors_latest_scan_at", "latest_scan_at"),)

    id = Column(String(32), primary_key=True, default=_new_id)
    url = Column(String(512), unique=True, nullable=False)
    hostname = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    # Scorecard blobs stay loosely typed here; they are re-validated on every read.
    latest_scorecard_json = Column(Text, nullable=True)
    previous_scorecard_json = Column(Text, nullable=True)
    latest_scan_at = Column(DateTime, nullable=True)
    previous_scan_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    audit_logs = relationship("AuditLog", back_populates="vendor", cascade="all, delete-orphan")


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_vendor_created", "vendor_id", "created_at"),)

    id = Column(String(32), primary_key=True, default=_new_id)
    vendor_id = Column(String(32), ForeignKey("vendors.id"), nullable=False, index=True)
    event_type = Column(String(32), nullable=False, index=True)
    summary = Column(Text, default="", nullable=False)
    diff_json = Column(Text, default="{}", nullable=False)
    scorecard_json = Column(Text, default="{}", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    vendor = relationship("Vendor", back_populates="audit_logs")
