from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import MeterReadingDraft


def list_drafts(db: Session, inspection_id: str) -> list[MeterReadingDraft]:
    q = (
        select(MeterReadingDraft)
        .where(MeterReadingDraft.inspection_id == str(inspection_id))
        .order_by(MeterReadingDraft.id.asc())
    )
    return list(db.scalars(q).all())


def get_draft(db: Session, inspection_id: str, meter_id: str) -> Optional[MeterReadingDraft]:
    return db.scalar(
        select(MeterReadingDraft).where(
            MeterReadingDraft.inspection_id == str(inspection_id),
            MeterReadingDraft.meter_id == str(meter_id),
        )
    )


class SqlDraftStore:
    """Upserts one draft row per (inspection, meter)."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def save(
        self,
        *,
        inspection_id: str,
        meter_id: str,
        index_text: Optional[str],
        note: Optional[str],
        error_kind: Optional[str],
    ) -> MeterReadingDraft:
        now = datetime.utcnow()
        row = get_draft(self.db, inspection_id, meter_id)
        if row is None:
            row = MeterReadingDraft(
                inspection_id=str(inspection_id),
                meter_id=str(meter_id),
                created_at=now,
            )
        row.index_text = index_text
        row.note = note
        row.error_kind = error_kind
        row.updated_at = now
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row
