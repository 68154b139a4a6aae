from __future__ import annotations

import datetime

from signpost_workflow.models.db import db


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class AuditDateTimeMixin:  # pylint: disable=too-few-public-methods
    """Inherit this class to extend the model with created and modified column."""

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    modified_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
