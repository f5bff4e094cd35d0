from typing import List, Optional
from eventpilot.extensions import db
from eventpilot.models import LedgerItem


class LedgerRepository:
    @staticmethod
    def find_by_payment_intent(payment_intent_id: str) -> Optional[LedgerItem]:
        if not payment_intent_id:
            return None
        return LedgerItem.query.filter_by(stripe_payment_intent_id=payment_intent_id).first()

    @staticmethod
    def list_for_event(event_id: int, instance_id: Optional[int] = None) -> List[LedgerItem]:
        query = LedgerItem.query.filter_by(event_id=event_id)
        if instance_id:
            query = query.filter_by(instance_id=instance_id)
        return query.order_by(LedgerItem.created_at.desc(), LedgerItem.id.desc()).all()

    @staticmethod
    def create(attrs) -> LedgerItem:
        item = LedgerItem(**attrs)
        db.session.add(item)
        db.session.flush()
        return item
