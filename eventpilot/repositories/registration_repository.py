from datetime import datetime
from typing import List, Optional
from eventpilot.extensions import db
from eventpilot.models import (
    Registration,
    RegistrationField,
    RegistrationPeriod,
    RegistrationPeriodPricing,
    RegistrationTier,
    RegistrationUpsell,
    UpsellItem,
)
from eventpilot.models.enums import RecordStatus


class RegistrationRepository:
    @staticmethod
    def find_for_event(event_id: int, registration_id: int) -> Optional[Registration]:
        return Registration.query.filter_by(
            id=registration_id, event_id=event_id, status=RecordStatus.ACTIVE
        ).first()

    @staticmethod
    def list_for_event(event_id: int, instance_id: Optional[int] = None, finalized: Optional[bool] = None,
                       page: int = 1, size: int = 25):
        query = Registration.query.filter_by(event_id=event_id, status=RecordStatus.ACTIVE)
        if instance_id:
            query = query.filter_by(instance_id=instance_id)
        if finalized is not None:
            query = query.filter_by(finalized=finalized)
        total = query.count()
        registrations = (
            query.order_by(Registration.created_at.desc(), Registration.id.desc())
            .offset((page - 1) * size)
            .limit(size)
            .all()
        )
        return registrations, total

    @staticmethod
    def find_for_update(event_id: int, registration_id: int) -> Optional[Registration]:
        return (
            Registration.query.filter_by(
                id=registration_id, event_id=event_id, status=RecordStatus.ACTIVE
            )
            .with_for_update()
            .first()
        )

    @staticmethod
    def find_tier(event_id: int, instance_id: int, tier_id: int) -> Optional[RegistrationTier]:
        return RegistrationTier.query.filter_by(
            id=tier_id,
            event_id=event_id,
            instance_id=instance_id,
            status=RecordStatus.ACTIVE,
        ).first()

    @staticmethod
    def find_current_pricing(
        event_id: int, instance_id: int, tier_id: int, at: datetime
    ) -> Optional[RegistrationPeriodPricing]:
        """Price of a tier in the registration period whose window contains `at`."""
        return (
            db.session.query(RegistrationPeriodPricing)
            .join(RegistrationPeriod, RegistrationPeriodPricing.registration_period_id == RegistrationPeriod.id)
            .filter(
                RegistrationPeriod.event_id == event_id,
                RegistrationPeriod.instance_id == instance_id,
                RegistrationPeriod.status == RecordStatus.ACTIVE,
                RegistrationPeriod.starts_at <= at,
                RegistrationPeriod.ends_at >= at,
                RegistrationPeriodPricing.registration_tier_id == tier_id,
                RegistrationPeriodPricing.status == RecordStatus.ACTIVE,
                RegistrationPeriodPricing.available.is_(True),
            )
            .order_by(RegistrationPeriod.starts_at.desc())
            .first()
        )

    @staticmethod
    def find_upsell_items(event_id: int, upsell_item_ids: List[int]) -> List[UpsellItem]:
        if not upsell_item_ids:
            return []
        return UpsellItem.query.filter(
            UpsellItem.event_id == event_id,
            UpsellItem.id.in_(upsell_item_ids),
            UpsellItem.status == RecordStatus.ACTIVE,
        ).all()

    @staticmethod
    def count_upsell_sold(upsell_item_id: int) -> int:
        """Quantity of an upsell item attached to non-deleted registrations."""
        total = (
            db.session.query(db.func.coalesce(db.func.sum(RegistrationUpsell.quantity), 0))
            .join(Registration, RegistrationUpsell.registration_id == Registration.id)
            .filter(
                RegistrationUpsell.upsell_item_id == upsell_item_id,
                Registration.status == RecordStatus.ACTIVE,
            )
            .scalar()
        )
        return int(total or 0)

    @staticmethod
    def get_fields(event_id: int, instance_id: int) -> List[RegistrationField]:
        return (
            RegistrationField.query.filter_by(
                event_id=event_id, instance_id=instance_id, status=RecordStatus.ACTIVE
            )
            .order_by(RegistrationField.order.asc())
            .all()
        )

    @staticmethod
    def add(instance):
        db.session.add(instance)
        db.session.flush()
        return instance
