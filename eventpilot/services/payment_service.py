import stripe
import logging
from dataclasses import dataclass
from decimal import Decimal
from flask import current_app
from eventpilot.extensions import db
from eventpilot.exceptions import ExternalServiceError, NotFoundError, ValidationError
from eventpilot.models.enums import LogType
from eventpilot.repositories.event_repository import EventRepository
from eventpilot.repositories.ledger_repository import LedgerRepository
from eventpilot.repositories.registration_repository import RegistrationRepository
from eventpilot.services.coupon_service import CouponService
from eventpilot.services.ledger_service import LedgerService
from eventpilot.services.pricing_service import ZERO, round_money, to_money
from eventpilot.utils.log_buffer import LogBuffer
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Totals below this are treated as free; Stripe cannot charge less anyway
PAYMENT_THRESHOLD = Decimal("0.30")
REGISTRATION_SCOPE = "EVENTPILOT:REGISTRATION"


@dataclass
class PaymentDecision:
    requires_payment: bool
    total: Decimal
    discount: Decimal
    total_before: Decimal

    def to_dict(self):
        return {
            "requires_payment": self.requires_payment,
            "total": str(self.total),
            "discount": str(self.discount),
            "total_before": str(self.total_before),
        }


def to_cents(amount) -> int:
    return int(round_money(amount) * 100)


class PaymentService:
    @staticmethod
    def _ensure_stripe_key():
        """Ensure Stripe API key is set"""
        if not stripe.api_key:
            stripe.api_key = current_app.config.get("STRIPE_SECRET_KEY")
            if not stripe.api_key:
                raise ExternalServiceError("Stripe API key not configured")

    @staticmethod
    def get_stripe_config() -> Dict[str, str]:
        """Get Stripe publishable key for frontend"""
        return {
            "publishable_key": current_app.config.get("STRIPE_PUBLISHABLE_KEY", "")
        }

    @staticmethod
    def decide_payment(registration_price, upsell_total, coupon=None) -> PaymentDecision:
        registration_price = to_money(registration_price)
        upsell_total = to_money(upsell_total)
        total_before = registration_price + upsell_total
        discount = CouponService.compute_discount(coupon, registration_price, upsell_total)
        total = round_money(max(ZERO, total_before - discount))
        return PaymentDecision(
            requires_payment=total >= PAYMENT_THRESHOLD,
            total=total,
            discount=round_money(discount),
            total_before=round_money(total_before),
        )

    @staticmethod
    def _resolve_customer(email: str, name: Optional[str], account: str) -> Optional[str]:
        """Reuse or create a Stripe customer on the connected account.

        Failures are logged and result in no customer; the intent is still created.
        """
        try:
            existing = stripe.Customer.list(email=email, limit=1, stripe_account=account)
            if existing.data:
                return existing.data[0].id
            customer = stripe.Customer.create(email=email, name=name or None, stripe_account=account)
            return customer.id
        except stripe.StripeError as e:
            logger.warning(f"Could not resolve Stripe customer for {email}: {str(e)}")
            return None

    @staticmethod
    def create_registration_payment_intent(
        registration, total, payer_email: Optional[str] = None, payer_name: Optional[str] = None,
        log_buffer: Optional[LogBuffer] = None,
    ) -> Dict[str, Any]:
        """Create a PaymentIntent for a registration on the event's connected account"""
        PaymentService._ensure_stripe_key()

        event = EventRepository.get_event(registration.event_id)
        if not event:
            raise NotFoundError("Event not found")
        account = event.stripe_connected_account_id
        if not account:
            raise ExternalServiceError("This event is not set up to accept payments")

        customer_id = None
        if payer_email:
            customer_id = PaymentService._resolve_customer(payer_email, payer_name, account)

        params = {
            "amount": to_cents(total),
            "currency": "usd",
            "metadata": {
                "scope": REGISTRATION_SCOPE,
                "eventId": str(registration.event_id),
                "instanceId": str(registration.instance_id),
                "registrationId": str(registration.id),
            },
            "description": f"Registration: {event.name}",
            "automatic_payment_methods": {"enabled": True},
            "stripe_account": account,
        }
        if customer_id:
            params["customer"] = customer_id
        if payer_email:
            params["receipt_email"] = payer_email

        try:
            intent = stripe.PaymentIntent.create(**params)
        except stripe.StripeError as e:
            current_app.logger.error(f"Stripe error creating PaymentIntent: {str(e)}")
            raise ExternalServiceError("Payment processing error")

        registration.stripe_payment_intent_id = intent.id
        db.session.commit()
        current_app.logger.info(
            f"PaymentIntent {intent.id} created for registration {registration.id} ({to_cents(total)} cents)"
        )
        if log_buffer is not None:
            log_buffer.push(
                LogType.STRIPE_PAYMENT_INTENT_CREATED,
                event_id=registration.event_id,
                registration_id=registration.id,
                data={"payment_intent_id": intent.id, "amount": str(total)},
            )

        return {
            "client_secret": intent.client_secret,
            "payment_intent_id": intent.id,
            "publishable_key": current_app.config.get("STRIPE_PUBLISHABLE_KEY", ""),
            "stripe_account": account,
        }

    @staticmethod
    def handle_webhook_event(payload, signature: str) -> Dict[str, Any]:
        """Verify and dispatch a Stripe webhook"""
        webhook_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
        if not webhook_secret:
            current_app.logger.error("Stripe webhook secret not configured")
            raise ExternalServiceError("Webhook secret not configured")

        try:
            event = stripe.Webhook.construct_event(payload, signature, webhook_secret)
        except stripe.SignatureVerificationError as e:
            current_app.logger.error(f"Invalid webhook signature: {str(e)}")
            raise ValidationError("Invalid signature")
        except ValueError as e:
            current_app.logger.error(f"Invalid webhook payload: {str(e)}")
            raise ValidationError("Invalid payload")

        event_type = event["type"]
        obj = event["data"]["object"]
        metadata = obj.get("metadata") or {}
        current_app.logger.info(f"Received Stripe webhook event {event.get('id')}: {event_type}")

        log_buffer = LogBuffer()
        log_buffer.push(
            LogType.STRIPE_WEBHOOK_RECEIVED,
            event_id=PaymentService._metadata_int(metadata, "eventId"),
            data={"id": event.get("id"), "type": event_type, "object_id": obj.get("id")},
        )
        log_buffer.flush()

        if metadata.get("scope") != REGISTRATION_SCOPE:
            current_app.logger.info(f"Ignoring webhook {event.get('id')} outside registration scope")
            return {"status": "ignored"}

        if event_type == "payment_intent.succeeded":
            return PaymentService._handle_successful_payment_intent(obj)

        if event_type == "payment_intent.payment_failed":
            return PaymentService._handle_failed_payment_intent(obj)

        current_app.logger.info(f"Unhandled webhook event type: {event_type}")
        return {"status": "success"}

    @staticmethod
    def _metadata_int(metadata, key):
        try:
            return int(metadata.get(key))
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _receipt_url(payment_intent) -> Optional[str]:
        charge = payment_intent.get("latest_charge")
        if isinstance(charge, dict):
            return charge.get("receipt_url")
        charges = (payment_intent.get("charges") or {}).get("data") or []
        return charges[0].get("receipt_url") if charges else None

    @staticmethod
    def _handle_successful_payment_intent(payment_intent) -> Dict[str, Any]:
        """Record the charge and finalize the registration it paid for"""
        from eventpilot.services.registration_service import RegistrationService

        metadata = payment_intent.get("metadata") or {}
        event_id = PaymentService._metadata_int(metadata, "eventId")
        registration_id = PaymentService._metadata_int(metadata, "registrationId")
        if not event_id or not registration_id:
            current_app.logger.error(f"Missing registration metadata in PaymentIntent: {metadata}")
            raise ValidationError("Missing event or registration metadata")

        intent_id = payment_intent.get("id")
        if LedgerRepository.find_by_payment_intent(intent_id):
            current_app.logger.info(f"PaymentIntent {intent_id} already recorded, skipping")
            return {"status": "duplicate"}

        registration = RegistrationRepository.find_for_event(event_id, registration_id)
        if not registration:
            raise NotFoundError("Registration not found")

        amount = Decimal(int(payment_intent.get("amount_received") or payment_intent.get("amount") or 0)) / 100
        log_buffer = LogBuffer()
        log_buffer.push(
            LogType.STRIPE_PAYMENT_INTENT_SUCCEEDED,
            event_id=event_id,
            registration_id=registration_id,
            data={"payment_intent_id": intent_id, "amount": str(amount)},
        )

        result = RegistrationService.finalize_registration(
            registration_id,
            event_id,
            amount=amount,
            receipt_url=PaymentService._receipt_url(payment_intent),
            payment_confirmation=payment_intent,
            log_buffer=log_buffer,
        )
        LedgerService.create_registration_item(
            registration,
            amount,
            payment_intent_id=intent_id,
            crm_person_id=result["crm_person_id"],
            log_buffer=log_buffer,
        )
        db.session.commit()
        log_buffer.flush()

        current_app.logger.info(f"Registration {registration_id} paid via PaymentIntent {intent_id}")
        return {"status": "success", "crm_person_id": result["crm_person_id"]}

    @staticmethod
    def _handle_failed_payment_intent(payment_intent) -> Dict[str, Any]:
        metadata = payment_intent.get("metadata") or {}
        error = (payment_intent.get("last_payment_error") or {}).get("message")
        current_app.logger.warning(
            f"Payment failed for registration {metadata.get('registrationId')}: {error}"
        )
        log_buffer = LogBuffer()
        log_buffer.push(
            LogType.STRIPE_PAYMENT_INTENT_FAILED,
            event_id=PaymentService._metadata_int(metadata, "eventId"),
            registration_id=PaymentService._metadata_int(metadata, "registrationId"),
            data={"payment_intent_id": payment_intent.get("id"), "error": error},
        )
        log_buffer.flush()
        return {"status": "payment_failed"}

    @staticmethod
    def confirm_registration_payment(event_id: int, registration_id: int, payment_intent_id: str):
        """Client-side confirmation; Stripe is asked directly whether the intent succeeded"""
        PaymentService._ensure_stripe_key()

        registration = RegistrationRepository.find_for_event(event_id, registration_id)
        if not registration:
            raise NotFoundError("Registration not found")
        if registration.finalized:
            return {"finalized": True, "crm_person_id": registration.crm_person_id}
        if not payment_intent_id or payment_intent_id != registration.stripe_payment_intent_id:
            raise ValidationError("Payment does not match this registration")

        event = EventRepository.get_event(event_id)
        try:
            intent = stripe.PaymentIntent.retrieve(
                payment_intent_id,
                expand=["latest_charge"],
                stripe_account=event.stripe_connected_account_id,
            )
        except stripe.StripeError as e:
            current_app.logger.error(f"Error retrieving PaymentIntent {payment_intent_id}: {str(e)}")
            raise ExternalServiceError("Error verifying payment")

        if intent.get("status") != "succeeded":
            return {"finalized": False, "status": intent.get("status")}

        result = PaymentService._handle_successful_payment_intent(intent)
        registration = RegistrationRepository.find_for_event(event_id, registration_id)
        return {"finalized": registration.finalized, "crm_person_id": registration.crm_person_id, "status": result["status"]}
