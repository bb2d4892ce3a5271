"""Audit log service."""

from fastapi import Request
from sqlalchemy.orm import Session

from ..rate_limit import client_ip
from .models import AuditAction, AuditLog


def audit(db: Session, request: Request, action: AuditAction, detail: str = "", user_id=None) -> None:
    """Add an audit entry to the session; the caller commits."""
    db.add(
        AuditLog(
            user_id=user_id,
            action=str(action),
            detail=detail,
            ip_address=client_ip(request),
        )
    )


def recent_entries(db: Session, user_id, limit: int = 20) -> list[AuditLog]:
    return (
        db.query(AuditLog)
        .filter(AuditLog.user_id == user_id)
        .order_by(AuditLog.created_at.desc())
        .limit(limit)
        .all()
    )
