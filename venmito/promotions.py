# venmito/promotions.py
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .matching import find_person_by_contact
from .models import Promotion
from .pipeline import Applied, Reconciler, RowOutcome, Skipped, SkipReason
from .records import PromotionRecord, RawPromotion

logger = logging.getLogger(__name__)


class PromotionsReconciler(Reconciler):
    """
    Promotions belong to an existing person found by email or telephone.
    (person, promotion, promotion_date) is the dedup key; a repeat only
    refreshes `responded`. Rows without a date take the batch run date, so
    re-sending an undated file on another day inserts new promotions.
    """

    family = "promotions"
    raw_model = RawPromotion

    def __init__(self, session: Session, today: Optional[date] = None):
        super().__init__(session)
        self.today = today or date.today()

    def normalize(self, raw: Any) -> PromotionRecord:
        return self.raw_model.model_validate(raw).to_record(today=self.today)

    def describe(self, record: PromotionRecord) -> str:
        return f"email={record.client_email or '-'} telephone={record.telephone or '-'}"

    def reconcile(self, index: int, record: PromotionRecord) -> RowOutcome:
        person = find_person_by_contact(self.session, email=record.client_email, telephone=record.telephone)
        if person is None:
            return Skipped(index, SkipReason.PERSON_NOT_FOUND, "no person with this email or telephone",
                           self.describe(record))

        promo = self.session.scalars(
            select(Promotion).where(
                Promotion.person_id == person.id,
                Promotion.promotion == record.promotion,
                Promotion.promotion_date == record.promotion_date,
            ).order_by(Promotion.id).limit(1)
        ).first()

        created = promo is None
        if created:
            promo = Promotion(
                person_id=person.id,
                promotion=record.promotion,
                responded=record.responded,
                promotion_date=record.promotion_date,
            )
            self.session.add(promo)
        else:
            promo.responded = record.responded
            promo.updated_at = datetime.now(timezone.utc)
        self.session.flush()

        return Applied(index, {
            "id": promo.id,
            "person_id": person.id,
            "promotion": promo.promotion,
            "responded": promo.responded,
            "promotion_date": promo.promotion_date.isoformat(),
            "created": created,
        })
