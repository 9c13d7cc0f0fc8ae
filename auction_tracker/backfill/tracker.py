# auction_tracker/backfill/tracker.py
"""Persistent per (make, model) backfill state.

PENDING -> BACKFILLED | FAILED, FAILED -> PENDING | BACKFILLED. BACKFILLED is
terminal: every upsert carries a conflict WHERE clause that leaves such rows
untouched, so two overlapping runs cannot reopen a finished model.
"""
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..crud import insert_for
from ..models import ModelBackfillState
from ..schemas import BackfillState, BackfillStats, BackfillStatus, ModelIdentifier
from ..utils import logger, utcnow


class ModelBackfillTracker:
    def __init__(self, db: Session, clock=utcnow):
        self.db = db
        self.clock = clock

    def get_state(self, make, model):
        row = self.db.query(ModelBackfillState).filter(
            ModelBackfillState.make == make, ModelBackfillState.model == model
        ).first()
        return BackfillState.model_validate(row) if row else None

    def needs_backfill(self, make, model) -> bool:
        state = self.get_state(make, model)
        return state is None or state.status in (BackfillStatus.PENDING, BackfillStatus.FAILED)

    def _upsert(self, make, model, **values):
        table = ModelBackfillState.__table__
        stmt = insert_for(self.db, table).values(make=make, model=model, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["make", "model"],
            set_={**{k: stmt.excluded[k] for k in values}, "updated_at": func.now()},
            where=table.c.status != BackfillStatus.BACKFILLED.value,
        )
        self.db.execute(stmt)
        self.db.commit()

    def mark_pending(self, make, model):
        self._upsert(make, model, status=BackfillStatus.PENDING.value, error_message=None)

    def mark_backfilled(self, make, model, auction_count):
        self._upsert(
            make, model,
            status=BackfillStatus.BACKFILLED.value,
            backfilled_at=self.clock(),
            auction_count=auction_count,
            error_message=None,
        )

    def mark_failed(self, make, model, error_message):
        self._upsert(make, model, status=BackfillStatus.FAILED.value, error_message=error_message)

    def pending_models(self, limit=None):
        """Models still waiting for a backfill (PENDING or FAILED), oldest first."""
        q = (
            self.db.query(ModelBackfillState)
            .filter(ModelBackfillState.status.in_([BackfillStatus.PENDING.value, BackfillStatus.FAILED.value]))
            .order_by(ModelBackfillState.updated_at.asc(), ModelBackfillState.id.asc())
        )
        if limit is not None:
            q = q.limit(limit)
        return [ModelIdentifier(make=row.make, model=row.model) for row in q.all()]

    def identify_and_mark_new_models(self, auctions):
        """Mark every distinct make/model that still needs a backfill as PENDING."""
        unique = {}
        for auction in auctions:
            make = (getattr(auction, "make", None) or "").strip()
            model = (getattr(auction, "model", None) or "").strip()
            if make and model and (make, model) not in unique:
                unique[(make, model)] = ModelIdentifier(make=make, model=model)

        marked = []
        for ident in unique.values():
            if self.needs_backfill(ident.make, ident.model):
                self.mark_pending(ident.make, ident.model)
                marked.append(ident)
        logger.info("Identified %d models needing backfill", len(marked))
        return marked

    def stats(self) -> BackfillStats:
        rows = (
            self.db.query(ModelBackfillState.status, func.count(ModelBackfillState.id))
            .group_by(ModelBackfillState.status)
            .all()
        )
        counts = {status: count for status, count in rows}
        pending = counts.get(BackfillStatus.PENDING.value, 0)
        backfilled = counts.get(BackfillStatus.BACKFILLED.value, 0)
        failed = counts.get(BackfillStatus.FAILED.value, 0)
        return BackfillStats(pending=pending, backfilled=backfilled, failed=failed,
                             total=pending + backfilled + failed)
