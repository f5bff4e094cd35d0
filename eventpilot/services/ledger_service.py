import logging
from decimal import Decimal
from typing import Optional
from eventpilot.models.enums import LedgerItemSource, LogType
from eventpilot.repositories.event_repository import EventRepository
from eventpilot.repositories.ledger_repository import LedgerRepository
from eventpilot.exceptions import NotFoundError
from eventpilot.services.pricing_service import PricingService, ZERO, round_money

logger = logging.getLogger(__name__)


class LedgerService:
    @staticmethod
    def create_registration_item(
        registration,
        amount,
        payment_intent_id: Optional[str] = None,
        crm_person_id: Optional[int] = None,
        log_buffer=None,
    ):
        """Record money received for a registration.

        Nothing is recorded for non-positive amounts. The original amount is
        the undiscounted snapshot total. Does not commit.
        """
        amount = round_money(amount)
        if amount <= 0:
            return None

        registration_price, upsell_total = PricingService.registration_totals(registration)
        item = LedgerRepository.create(
            {
                "event_id": registration.event_id,
                "instance_id": registration.instance_id,
                "registration_id": registration.id,
                "crm_person_id": crm_person_id,
                "amount": amount,
                "original_amount": round_money(registration_price + upsell_total),
                "source": LedgerItemSource.REGISTRATION,
                "stripe_payment_intent_id": payment_intent_id,
            }
        )
        logger.info(
            f"Ledger item {item.id} created for registration {registration.id}: {amount}"
        )
        if log_buffer is not None:
            log_buffer.push(
                LogType.LEDGER_ITEM_CREATED,
                event_id=registration.event_id,
                registration_id=registration.id,
                ledger_item_id=item.id,
                data={"amount": str(amount), "stripe_payment_intent_id": payment_intent_id},
            )
        return item

    @staticmethod
    def get_ledger(event_id: int, instance_id: Optional[int] = None):
        if not EventRepository.get_event(event_id):
            raise NotFoundError("Event not found")
        items = LedgerRepository.list_for_event(event_id, instance_id)
        total = sum((Decimal(str(item.amount)) for item in items), ZERO)
        return {
            "items": [item.to_dict() for item in items],
            "total": str(round_money(total)),
        }
