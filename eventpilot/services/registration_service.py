import logging
from typing import Any, Dict, Optional
from eventpilot.extensions import db
from eventpilot.exceptions import MissingFieldsError, NotFoundError, ValidationError
from eventpilot.models import Registration, RegistrationFieldResponse, RegistrationUpsell
from eventpilot.models.enums import LogType
from eventpilot.repositories.event_repository import EventRepository
from eventpilot.repositories.registration_repository import RegistrationRepository
from eventpilot.services.coupon_service import CouponService
from eventpilot.services.crm_service import CrmService
from eventpilot.services.ledger_service import LedgerService
from eventpilot.services.payment_service import PaymentService
from eventpilot.services.pricing_service import PricingService
from eventpilot.utils.email import send_registration_confirmation_email
from eventpilot.utils.field_roles import FieldRoleMap
from eventpilot.utils.log_buffer import LogBuffer

logger = logging.getLogger(__name__)


def _stripe_customer_id(payment_confirmation) -> Optional[str]:
    if not payment_confirmation:
        return None
    customer = payment_confirmation.get("customer")
    if isinstance(customer, dict):
        return customer.get("id")
    return customer


class RegistrationService:
    @staticmethod
    def _normalize_responses(raw):
        if isinstance(raw, dict):
            items = raw.items()
        else:
            items = ((r.get("field_id"), r.get("value")) for r in raw or [])
        responses = {}
        for field_id, value in items:
            try:
                responses[int(field_id)] = value
            except (TypeError, ValueError):
                raise ValidationError("Invalid field response")
        return responses

    @staticmethod
    def _check_required_fields(fields, responses):
        errors = {}
        for field in fields:
            value = responses.get(field.id)
            if field.required and (value is None or str(value).strip() == ""):
                errors[str(field.id)] = [f"{field.label or 'This field'} is required"]
        if errors:
            raise ValidationError("Missing required fields", fields=errors)

    @staticmethod
    def list_registrations(event_id: int, instance_id: Optional[int] = None, finalized: Optional[bool] = None,
                           page: int = 1, size: int = 25):
        """One page of the event's registrations with coupon, contact and totals."""
        if not EventRepository.get_event(event_id):
            raise NotFoundError("Event not found")
        page = max(page or 1, 1)
        size = min(max(size or 25, 1), 100)

        registrations, total = RegistrationRepository.list_for_event(
            event_id, instance_id=instance_id, finalized=finalized, page=page, size=size
        )
        rows = []
        for registration in registrations:
            row = registration.to_dict()
            registration_price, upsell_total = PricingService.registration_totals(registration)
            decision = PaymentService.decide_payment(
                registration_price, upsell_total, registration.coupon
            )
            row["total"] = str(decision.total)
            row["coupon"] = (
                {"id": registration.coupon.id, "code": registration.coupon.code}
                if registration.coupon
                else None
            )
            row["crm_person"] = (
                registration.crm_person.to_summary() if registration.crm_person else None
            )
            rows.append(row)
        return {"registrations": rows, "total": total, "page": page, "size": size}

    @staticmethod
    def submit_registration(event_id: int, data: Dict[str, Any], log_buffer: Optional[LogBuffer] = None):
        """Create a registration with its responses, upsells and coupon in one transaction.

        Afterwards the registration is either finalized right away (nothing to
        pay) or a payment intent is created for the client to complete.
        """
        missing = [f for f in ("instance_id", "registration_tier_id") if not data.get(f)]
        if missing:
            raise MissingFieldsError(missing)

        event = EventRepository.get_event(event_id)
        if not event:
            raise NotFoundError("Event not found")
        instance_id = int(data["instance_id"])
        if not EventRepository.get_instance(event_id, instance_id):
            raise NotFoundError("Event instance not found")

        log_buffer = log_buffer if log_buffer is not None else LogBuffer()
        responses = RegistrationService._normalize_responses(data.get("responses"))
        fields = RegistrationRepository.get_fields(event_id, instance_id)
        RegistrationService._check_required_fields(fields, responses)
        field_ids = {f.id for f in fields}

        try:
            pricing, price = PricingService.capture_registration_price(
                event_id, instance_id, int(data["registration_tier_id"])
            )
            registration = RegistrationRepository.add(
                Registration(
                    event_id=event_id,
                    instance_id=instance_id,
                    registration_tier_id=pricing.registration_tier_id,
                    registration_period_pricing_id=pricing.id,
                    price_snapshot=price,
                    team_id=data.get("team_id"),
                )
            )

            for field_id, value in responses.items():
                if field_id not in field_ids:
                    continue
                db.session.add(
                    RegistrationFieldResponse(
                        registration_id=registration.id,
                        field_id=field_id,
                        value=None if value is None else str(value),
                    )
                )

            for item, item_price, quantity in PricingService.capture_upsell_snapshots(
                event_id, data.get("upsells")
            ):
                db.session.add(
                    RegistrationUpsell(
                        registration_id=registration.id,
                        upsell_item_id=item.id,
                        price_snapshot=item_price,
                        quantity=quantity,
                    )
                )

            if data.get("coupon_code"):
                coupon = CouponService.validate_coupon(event_id, instance_id, data["coupon_code"])
                registration.coupon_id = coupon.id

            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(f"Registration {registration.id} created for event {event_id}")
        log_buffer.push(
            LogType.REGISTRATION_CREATED,
            event_id=event_id,
            registration_id=registration.id,
            data={"price_snapshot": str(price)},
        )
        if registration.coupon_id:
            log_buffer.push(
                LogType.COUPON_APPLIED,
                event_id=event_id,
                registration_id=registration.id,
                coupon_id=registration.coupon_id,
            )
        return RegistrationService._settle(registration, log_buffer)

    @staticmethod
    def _settle(registration, log_buffer: LogBuffer):
        """Finalize free registrations or open a payment for paid ones."""
        db.session.refresh(registration)
        registration_price, upsell_total = PricingService.registration_totals(registration)
        decision = PaymentService.decide_payment(registration_price, upsell_total, registration.coupon)

        result = {"registration": registration.to_dict(), "pricing": decision.to_dict()}
        if registration.coupon is not None:
            result["coupon"] = registration.coupon.summary()

        if not decision.requires_payment:
            finalized = RegistrationService.finalize_registration(
                registration.id, registration.event_id, log_buffer=log_buffer
            )
            result["registration"] = registration.to_dict()
            result["crm_person_id"] = finalized["crm_person_id"]
            return result

        participant = FieldRoleMap.for_instance(
            registration.event_id, registration.instance_id
        ).participant(registration)
        result["payment"] = PaymentService.create_registration_payment_intent(
            registration,
            decision.total,
            payer_email=participant.email,
            payer_name=participant.name,
            log_buffer=log_buffer,
        )
        log_buffer.flush()
        result["registration"] = registration.to_dict()
        return result

    @staticmethod
    def _open_registration(event_id: int, registration_id: int):
        registration = RegistrationRepository.find_for_event(event_id, registration_id)
        if not registration:
            raise NotFoundError("Registration not found")
        if registration.finalized:
            raise ValidationError("Registration is already finalized")
        return registration

    @staticmethod
    def apply_coupon(event_id: int, registration_id: int, code: str, log_buffer: Optional[LogBuffer] = None):
        registration = RegistrationService._open_registration(event_id, registration_id)
        coupon = CouponService.validate_coupon(event_id, registration.instance_id, code)

        registration.coupon_id = coupon.id
        db.session.commit()
        logger.info(f"Coupon {coupon.code} applied to registration {registration.id}")

        log_buffer = log_buffer if log_buffer is not None else LogBuffer()
        log_buffer.push(
            LogType.COUPON_APPLIED,
            event_id=event_id,
            registration_id=registration.id,
            coupon_id=coupon.id,
        )
        return RegistrationService._settle(registration, log_buffer)

    @staticmethod
    def remove_coupon(event_id: int, registration_id: int, log_buffer: Optional[LogBuffer] = None):
        registration = RegistrationService._open_registration(event_id, registration_id)
        coupon_id = registration.coupon_id

        registration.coupon_id = None
        db.session.commit()

        log_buffer = log_buffer if log_buffer is not None else LogBuffer()
        if coupon_id:
            log_buffer.push(
                LogType.COUPON_REMOVED,
                event_id=event_id,
                registration_id=registration.id,
                coupon_id=coupon_id,
            )
        return RegistrationService._settle(registration, log_buffer)

    @staticmethod
    def finalize_registration(
        registration_id: int,
        event_id: int,
        amount=None,
        receipt_url: Optional[str] = None,
        payment_confirmation=None,
        log_buffer: Optional[LogBuffer] = None,
    ) -> Dict[str, Optional[int]]:
        """Confirm a registration and link it to the participant's contact.

        Finalizing twice has no further effect. A ledger item is only written
        here for charges without a payment confirmation; confirmed payments
        are recorded by the caller. Database work is committed once and
        rolled back as a whole on failure. The confirmation email goes out
        after the commit and its failures are only logged.
        """
        registration = RegistrationRepository.find_for_update(event_id, registration_id)
        if not registration:
            raise NotFoundError("Registration not found")
        if registration.finalized:
            logger.info(f"Registration {registration_id} already finalized")
            return {"crm_person_id": registration.crm_person_id}

        event = EventRepository.get_event(event_id)
        if not event:
            raise NotFoundError("Event not found")

        log_buffer = log_buffer if log_buffer is not None else LogBuffer()
        participant = FieldRoleMap.for_instance(event_id, registration.instance_id).participant(registration)

        try:
            registration.finalized = True
            person, _ = CrmService.get_or_create_for_registration(
                event_id,
                participant.email,
                participant.name,
                stripe_customer_id=_stripe_customer_id(payment_confirmation),
                log_buffer=log_buffer,
            )
            registration.crm_person_id = person.id

            if payment_confirmation is None and amount is not None and amount > 0:
                LedgerService.create_registration_item(
                    registration, amount, crm_person_id=person.id, log_buffer=log_buffer
                )

            log_buffer.push(
                LogType.REGISTRATION_CONFIRMED,
                event_id=event_id,
                registration_id=registration.id,
                crm_person_id=person.id,
                data={
                    "finalized": True,
                    "amount": str(amount) if amount is not None else None,
                    "receipt_url": receipt_url,
                },
            )
            log_buffer.flush()
        except Exception:
            db.session.rollback()
            logger.exception(f"Failed to finalize registration {registration_id}")
            raise

        logger.info(f"Registration {registration_id} finalized (crm person {person.id})")

        if participant.email:
            try:
                send_registration_confirmation_email(
                    participant.email,
                    participant.name,
                    event,
                    registration,
                    amount=amount,
                    receipt_url=receipt_url,
                )
            except Exception as e:
                logger.warning(f"Confirmation email for registration {registration_id} failed: {e}")
        else:
            logger.warning(f"Registration {registration_id} has no participant email; confirmation not sent")

        return {"crm_person_id": person.id}
