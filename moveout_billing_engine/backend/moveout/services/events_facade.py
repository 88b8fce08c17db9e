# backend/moveout/services/events_facade.py
from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import WorkflowEvent


@dataclass(frozen=True)
class WorkflowEventOut:
    id: int
    inspection_id: Optional[str]
    actor_id: Optional[str]
    event_type: str
    payload: dict[str, Any]
    created_at: Optional[datetime]

    @classmethod
    def from_row(cls, row: WorkflowEvent) -> "WorkflowEventOut":
        try:
            payload = json.loads(row.payload_json) if row.payload_json else {}
        except ValueError:
            payload = {"raw": row.payload_json}
        return cls(
            id=int(row.id),
            inspection_id=row.inspection_id,
            actor_id=row.actor_id,
            event_type=row.event_type,
            payload=payload,
            created_at=row.created_at,
        )

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class WorkflowFacade:
    """Timeline of workflow events (inspection.*, billing.*) per inspection."""

    def emit(
        self,
        db: Session,
        *,
        inspection_id: Optional[str],
        actor_id: Optional[str],
        event_type: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> WorkflowEvent:
        if not event_type:
            raise ValueError("event_type required")
        row = WorkflowEvent(
            inspection_id=None if inspection_id is None else str(inspection_id),
            actor_id=None if actor_id is None else str(actor_id),
            event_type=event_type,
            payload_json=json.dumps(payload or {}, default=str, ensure_ascii=False),
            created_at=datetime.utcnow(),
        )
        db.add(row)
        db.commit()
        return row

    def list(
        self,
        db: Session,
        *,
        inspection_id: Optional[str] = None,
        prefix: Optional[str] = None,
        limit: int = 200,
    ) -> list[WorkflowEventOut]:
        """Newest first. `prefix` filters by event family, e.g. "billing."."""
        q = select(WorkflowEvent)
        if inspection_id is not None:
            q = q.where(WorkflowEvent.inspection_id == str(inspection_id))
        if prefix:
            q = q.where(WorkflowEvent.event_type.startswith(prefix, autoescape=True))
        q = q.order_by(WorkflowEvent.id.desc()).limit(limit)
        return [WorkflowEventOut.from_row(r) for r in db.scalars(q)]


wf = WorkflowFacade()
