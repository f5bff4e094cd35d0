from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Tuple
from eventpilot.exceptions import NotFoundError, ValidationError
from eventpilot.repositories.registration_repository import RegistrationRepository

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value) -> Decimal:
    return to_money(value).quantize(CENT, rounding=ROUND_HALF_UP)


class PricingService:
    @staticmethod
    def capture_registration_price(event_id: int, instance_id: int, tier_id: int, at=None):
        """Resolve the tier's price in the currently open registration period.

        Returns ``(period_pricing, price)``; the price is what gets stored on the
        registration and is never recalculated afterwards.
        """
        at = at or datetime.now(timezone.utc)
        tier = RegistrationRepository.find_tier(event_id, instance_id, tier_id)
        if not tier:
            raise NotFoundError("Registration tier not found")

        pricing = RegistrationRepository.find_current_pricing(event_id, instance_id, tier_id, at)
        if not pricing:
            raise ValidationError("Registration is not currently open for this tier")
        return pricing, to_money(pricing.price)

    @staticmethod
    def capture_upsell_snapshots(event_id: int, selections) -> List[Tuple[object, Decimal, int]]:
        selections = selections or []
        quantities = {}
        for selection in selections:
            if isinstance(selection, dict):
                item_id = selection.get("upsell_item_id") or selection.get("id")
                quantity = selection.get("quantity", 1)
            else:
                item_id, quantity = selection, 1
            try:
                item_id = int(item_id)
                quantity = int(quantity)
            except (TypeError, ValueError):
                raise ValidationError("Invalid upsell selection")
            if quantity < 1:
                raise ValidationError("Upsell quantity must be at least 1")
            quantities[item_id] = quantities.get(item_id, 0) + quantity

        if not quantities:
            return []

        items = {
            item.id: item
            for item in RegistrationRepository.find_upsell_items(event_id, list(quantities))
        }
        snapshots = []
        for item_id, quantity in quantities.items():
            item = items.get(item_id)
            if not item:
                raise NotFoundError("Upsell item not found")
            if item.inventory != -1:
                sold = RegistrationRepository.count_upsell_sold(item.id)
                if sold + quantity > item.inventory:
                    raise ValidationError(f"{item.name} is sold out")
            snapshots.append((item, to_money(item.price), quantity))
        return snapshots

    @staticmethod
    def registration_totals(registration) -> Tuple[Decimal, Decimal]:
        """Registration price and upsell total from the stored snapshots."""
        registration_price = to_money(registration.price_snapshot)
        upsell_total = sum(
            (to_money(u.price_snapshot) * (u.quantity or 1) for u in registration.upsells),
            ZERO,
        )
        return registration_price, upsell_total
