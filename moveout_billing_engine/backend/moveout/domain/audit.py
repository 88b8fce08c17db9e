# backend/moveout/domain/audit.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models import AuditEvent


def changed_fields(
    before: Optional[dict[str, Any]], after: Optional[dict[str, Any]]
) -> tuple[Optional[dict[str, Any]], Optional[dict[str, Any]]]:
    """
    Narrow a before/after pair down to the keys whose values differ.

    Creations (no before) and deletions (no after) are kept whole.
    """
    if before is None or after is None:
        return before, after
    keys = [k for k in after if before.get(k) != after.get(k)]
    keys += [k for k in before if k not in after]
    return {k: before.get(k) for k in keys}, {k: after.get(k) for k in keys}


def emit_audit(
    db: Session,
    *,
    actor_id: Optional[str],
    action: str,
    entity_type: str,
    entity_id: str,
    before: Optional[dict[str, Any]] = None,
    after: Optional[dict[str, Any]] = None,
    commit: bool = True,
) -> AuditEvent:
    before, after = changed_fields(before, after)
    row = AuditEvent(
        actor_id=None if actor_id is None else str(actor_id),
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        before_json=None if before is None else json.dumps(before, sort_keys=True, default=str, ensure_ascii=False),
        after_json=None if after is None else json.dumps(after, sort_keys=True, default=str, ensure_ascii=False),
        created_at=datetime.utcnow(),
    )
    db.add(row)
    if commit:
        db.commit()
    else:
        db.flush()
    return row
