# Overview: Service-layer operations for maintenance; retention cleanup of derived data.

from __future__ import annotations

from datetime import datetime, timedelta

from ..extensions import db
from ..models import AnalyticsEvent
from ..time_utils import utcnow
from ..validation import ValidationError


def cleanup_analytics(*, retention_days: int = 90, now: datetime | None = None) -> int:
    """
    Delete analytics events older than retention_days.

    Orders are preserved; only the reporting facts derived from them are removed.
    """
    if retention_days < 0:
        raise ValidationError("retention_days must be >= 0")
    cutoff = (now or utcnow()) - timedelta(days=retention_days)
    deleted = db.session.query(AnalyticsEvent).filter(
        AnalyticsEvent.created_at < cutoff
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
