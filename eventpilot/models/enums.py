from enum import Enum


class RecordStatus(Enum):
    ACTIVE = "Active"
    DELETED = "Deleted"


class DiscountType(Enum):
    FLAT = "FLAT"
    PERCENT = "PERCENT"


class CouponAppliesTo(Enum):
    REGISTRATION = "REGISTRATION"
    UPSELLS = "UPSELLS"
    BOTH = "BOTH"


class LedgerItemSource(Enum):
    REGISTRATION = "REGISTRATION"
    MANUAL = "MANUAL"


class CrmPersonSource(Enum):
    REGISTRATION = "REGISTRATION"
    EMAIL = "EMAIL"
    POINT_OF_SALE = "POINT_OF_SALE"


class FieldRole(Enum):
    PARTICIPANT_NAME = "participantName"
    PARTICIPANT_EMAIL = "participantEmail"
    PARTICIPANT_PHONE = "participantPhone"


class FieldType(Enum):
    TEXT = "TEXT"
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    DROPDOWN = "DROPDOWN"
    CHECKBOX = "CHECKBOX"
    TEXTAREA = "TEXTAREA"


class ParticipantKind(Enum):
    FROM = "FROM"
    TO = "TO"
    CC = "CC"
    BCC = "BCC"


class PaymentState(Enum):
    CREATED = "Created"
    AWAITING_PAYMENT = "Awaiting Payment"
    FINALIZED = "Finalized"


class LogType(Enum):
    REGISTRATION_CREATED = "REGISTRATION_CREATED"
    REGISTRATION_CONFIRMED = "REGISTRATION_CONFIRMED"
    COUPON_CREATED = "COUPON_CREATED"
    COUPON_MODIFIED = "COUPON_MODIFIED"
    COUPON_DELETED = "COUPON_DELETED"
    COUPON_APPLIED = "COUPON_APPLIED"
    COUPON_REMOVED = "COUPON_REMOVED"
    LEDGER_ITEM_CREATED = "LEDGER_ITEM_CREATED"
    CRM_PERSON_CREATED = "CRM_PERSON_CREATED"
    STRIPE_WEBHOOK_RECEIVED = "STRIPE_WEBHOOK_RECEIVED"
    STRIPE_PAYMENT_INTENT_CREATED = "STRIPE_PAYMENT_INTENT_CREATED"
    STRIPE_PAYMENT_INTENT_SUCCEEDED = "STRIPE_PAYMENT_INTENT_SUCCEEDED"
    STRIPE_PAYMENT_INTENT_FAILED = "STRIPE_PAYMENT_INTENT_FAILED"
    EMAIL_RECEIVED = "EMAIL_RECEIVED"
    EMAIL_SENT = "EMAIL_SENT"
