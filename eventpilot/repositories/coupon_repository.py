from typing import Dict, List, Optional
from eventpilot.extensions import db
from eventpilot.models import Coupon, Registration
from eventpilot.models.enums import RecordStatus


class CouponRepository:
    @staticmethod
    def find_by_code(event_id: int, instance_id: int, code: str) -> Optional[Coupon]:
        return Coupon.query.filter_by(
            event_id=event_id,
            instance_id=instance_id,
            code=code,
            status=RecordStatus.ACTIVE,
        ).first()

    @staticmethod
    def find_for_event(event_id: int, coupon_id: int) -> Optional[Coupon]:
        return Coupon.query.filter_by(
            id=coupon_id, event_id=event_id, status=RecordStatus.ACTIVE
        ).first()

    @staticmethod
    def list_for_instance(event_id: int, instance_id: int) -> List[Coupon]:
        return (
            Coupon.query.filter_by(
                event_id=event_id, instance_id=instance_id, status=RecordStatus.ACTIVE
            )
            .order_by(Coupon.created_at.asc(), Coupon.id.asc())
            .all()
        )

    @staticmethod
    def count_redemptions(coupon_id: int) -> int:
        """Redemptions are finalized, non-deleted registrations referencing the coupon."""
        return Registration.query.filter(
            Registration.coupon_id == coupon_id,
            Registration.status == RecordStatus.ACTIVE,
            Registration.finalized.is_(True),
        ).count()

    @staticmethod
    def redemption_counts(coupon_ids: List[int]) -> Dict[int, int]:
        if not coupon_ids:
            return {}
        rows = (
            db.session.query(Registration.coupon_id, db.func.count(Registration.id))
            .filter(
                Registration.coupon_id.in_(coupon_ids),
                Registration.status == RecordStatus.ACTIVE,
                Registration.finalized.is_(True),
            )
            .group_by(Registration.coupon_id)
            .all()
        )
        return {coupon_id: count for coupon_id, count in rows}

    @staticmethod
    def create(attrs) -> Coupon:
        coupon = Coupon(**attrs)
        db.session.add(coupon)
        db.session.flush()
        return coupon

    @staticmethod
    def update(coupon: Coupon, attrs: dict) -> Coupon:
        for key, value in attrs.items():
            if hasattr(coupon, key):
                setattr(coupon, key, value)
        db.session.flush()
        return coupon
