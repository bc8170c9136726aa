from __future__ import annotations

import datetime as _dt
import logging
from typing import Optional

from .contracts import AuditEvent, AuditEventType
from .session_store import Session

logger = logging.getLogger(__name__)


def _ts_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


def _sanitize_detail(detail: str) -> str:
    # IMPORTANT: Never include transcript / summary / audio bytes in detail.
    detail = (detail or "").replace("\n", " ").strip()
    if len(detail) > 200:
        detail = detail[:200] + "..."
    return detail


def log_event(
    session: Session,
    event_type: AuditEventType,
    code: str,
    detail: str,
    duration_ms: Optional[int] = None,
) -> AuditEvent:
    event = AuditEvent(
        ts_iso=_ts_iso(),
        session_id=session.session_id,
        type=event_type,
        code=code,
        detail=_sanitize_detail(detail),
        duration_ms=duration_ms,
    )
    session.audit_events.append(event)
    logger.debug(
        "audit session_id=%s type=%s code=%s duration_ms=%s",
        event.session_id,
        event.type,
        event.code,
        event.duration_ms,
    )
    return event
