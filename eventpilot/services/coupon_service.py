import logging
import secrets
import string
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from sqlalchemy.exc import IntegrityError
from eventpilot.extensions import db
from eventpilot.exceptions import (
    ConflictError,
    ExpiredOrExhaustedError,
    InvalidCouponError,
    NotFoundError,
    ValidationError,
)
from eventpilot.models.enums import CouponAppliesTo, DiscountType, LogType, RecordStatus
from eventpilot.repositories.coupon_repository import CouponRepository
from eventpilot.repositories.event_repository import EventRepository
from eventpilot.services.pricing_service import ZERO, round_money, to_money

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
GENERATED_CODE_LENGTH = 8
CODE_GENERATION_ATTEMPTS = 5


def _as_utc(dt):
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def _parse_datetime(value, field):
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    try:
        return _as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        raise ValidationError(fields={field: ["Invalid date"]})


class CouponService:
    @staticmethod
    def compute_discount(coupon, registration_price, upsell_total) -> Decimal:
        """Discount a coupon grants, never more than the amount it applies to."""
        if coupon is None:
            return ZERO
        registration_price = to_money(registration_price)
        upsell_total = to_money(upsell_total)

        if coupon.applies_to == CouponAppliesTo.REGISTRATION:
            eligible = registration_price
        elif coupon.applies_to == CouponAppliesTo.UPSELLS:
            eligible = upsell_total
        else:
            eligible = registration_price + upsell_total

        if eligible <= 0:
            return ZERO

        amount = to_money(coupon.amount)
        if coupon.discount_type == DiscountType.PERCENT:
            discount = round_money(eligible * amount / Decimal(100))
        else:
            discount = amount
        return max(ZERO, min(discount, eligible))

    @staticmethod
    def validate_coupon(event_id: int, instance_id: int, code: str, now=None):
        """Look up an applicable coupon by code or raise with the reason it can't be used."""
        code = (code or "").strip()
        if not code:
            raise InvalidCouponError()
        coupon = CouponRepository.find_by_code(event_id, instance_id, code)
        if not coupon:
            raise InvalidCouponError()

        now = now or datetime.now(timezone.utc)
        if coupon.ends_at and _as_utc(coupon.ends_at) < now:
            raise ExpiredOrExhaustedError("Coupon has expired")

        if coupon.max_redemptions != -1:
            if CouponRepository.count_redemptions(coupon.id) >= coupon.max_redemptions:
                raise ExpiredOrExhaustedError("Coupon has reached its redemption limit")
        return coupon

    @staticmethod
    def _clean_attrs(data, partial=False):
        errors = {}
        attrs = {}

        if "title" in data or not partial:
            title = (data.get("title") or "").strip()
            if not 2 <= len(title) <= 128:
                errors["title"] = ["Title must be between 2 and 128 characters"]
            attrs["title"] = title

        if "code" in data:
            code = (data.get("code") or "").strip()
            if code and not 2 <= len(code) <= 32:
                errors["code"] = ["Code must be between 2 and 32 characters"]
            if code:
                attrs["code"] = code

        if "discount_type" in data or not partial:
            try:
                attrs["discount_type"] = DiscountType[str(data.get("discount_type", "")).upper()]
            except KeyError:
                errors["discount_type"] = ["Discount type must be FLAT or PERCENT"]

        if "amount" in data or not partial:
            try:
                amount = Decimal(str(data.get("amount")))
                if not amount.is_finite() or amount <= 0:
                    raise InvalidOperation
                attrs["amount"] = amount
            except (InvalidOperation, ValueError):
                errors["amount"] = ["Amount must be a positive number"]

        if "applies_to" in data:
            try:
                attrs["applies_to"] = CouponAppliesTo[str(data.get("applies_to")).upper()]
            except KeyError:
                errors["applies_to"] = ["Applies to must be REGISTRATION, UPSELLS or BOTH"]

        if "max_redemptions" in data:
            try:
                max_redemptions = int(data.get("max_redemptions"))
                if max_redemptions != -1 and max_redemptions < 1:
                    raise ValueError
                attrs["max_redemptions"] = max_redemptions
            except (TypeError, ValueError):
                errors["max_redemptions"] = ["Max redemptions must be -1 or at least 1"]

        if "ends_at" in data:
            try:
                attrs["ends_at"] = _parse_datetime(data.get("ends_at"), "ends_at")
            except ValidationError as e:
                errors.update(e.fields)
            if data.get("ends_at_tz"):
                attrs["ends_at_tz"] = data.get("ends_at_tz")

        if errors:
            raise ValidationError("Invalid coupon", fields=errors)
        return attrs

    @staticmethod
    def _check_percent(discount_type, amount):
        if discount_type == DiscountType.PERCENT and to_money(amount) > 100:
            raise ValidationError(
                "Invalid coupon", fields={"amount": ["Percentage cannot exceed 100"]}
            )

    @staticmethod
    def _generate_code():
        return "".join(secrets.choice(CODE_ALPHABET) for _ in range(GENERATED_CODE_LENGTH))

    @staticmethod
    def _require_instance(event_id, instance_id):
        if not EventRepository.get_event(event_id):
            raise NotFoundError("Event not found")
        if not instance_id or not EventRepository.get_instance(event_id, int(instance_id)):
            raise NotFoundError("Event instance not found")
        return int(instance_id)

    @staticmethod
    def create_coupon(event_id: int, instance_id, data, user_id=None, log_buffer=None):
        instance_id = CouponService._require_instance(event_id, instance_id)
        attrs = CouponService._clean_attrs(data)
        CouponService._check_percent(attrs["discount_type"], attrs["amount"])
        attrs.update(event_id=event_id, instance_id=instance_id)

        explicit_code = attrs.get("code")
        attempts = 1 if explicit_code else CODE_GENERATION_ATTEMPTS
        for attempt in range(attempts):
            if not explicit_code:
                attrs["code"] = CouponService._generate_code()
            try:
                coupon = CouponRepository.create(attrs)
                db.session.commit()
                break
            except IntegrityError:
                db.session.rollback()
                if explicit_code:
                    raise ConflictError("A coupon with this code already exists")
                logger.info(f"Generated coupon code collision on attempt {attempt + 1}")
        else:
            raise ConflictError("Could not generate a unique coupon code")

        logger.info(f"Created coupon {coupon.id} ({coupon.code}) for event {event_id}")
        if log_buffer is not None:
            log_buffer.push(
                LogType.COUPON_CREATED,
                event_id=event_id,
                user_id=user_id,
                coupon_id=coupon.id,
                data=coupon.summary(),
            )
        return coupon

    @staticmethod
    def list_coupons(event_id: int, instance_id):
        instance_id = CouponService._require_instance(event_id, instance_id)
        coupons = CouponRepository.list_for_instance(event_id, instance_id)
        counts = CouponRepository.redemption_counts([c.id for c in coupons])
        return [c.to_dict(redemptions=counts.get(c.id, 0)) for c in coupons]

    @staticmethod
    def get_coupon(event_id: int, coupon_id: int):
        coupon = CouponRepository.find_for_event(event_id, coupon_id)
        if not coupon:
            raise NotFoundError("Coupon not found")
        return coupon

    @staticmethod
    def redemptions(coupon) -> int:
        return CouponRepository.count_redemptions(coupon.id)

    @staticmethod
    def update_coupon(event_id: int, coupon_id: int, data, user_id=None, log_buffer=None):
        coupon = CouponService.get_coupon(event_id, coupon_id)
        attrs = CouponService._clean_attrs(data, partial=True)
        CouponService._check_percent(
            attrs.get("discount_type", coupon.discount_type),
            attrs.get("amount", coupon.amount),
        )
        try:
            CouponRepository.update(coupon, attrs)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("A coupon with this code already exists")

        if log_buffer is not None:
            log_buffer.push(
                LogType.COUPON_MODIFIED,
                event_id=event_id,
                user_id=user_id,
                coupon_id=coupon.id,
                data=coupon.summary(),
            )
        return coupon

    @staticmethod
    def delete_coupon(event_id: int, coupon_id: int, user_id=None, log_buffer=None):
        coupon = CouponService.get_coupon(event_id, coupon_id)
        coupon.status = RecordStatus.DELETED
        db.session.commit()
        logger.info(f"Deleted coupon {coupon.id} for event {event_id}")
        if log_buffer is not None:
            log_buffer.push(
                LogType.COUPON_DELETED,
                event_id=event_id,
                user_id=user_id,
                coupon_id=coupon.id,
            )
        return coupon
