from eventpilot.models.user import User
from eventpilot.models.event import Event, EventInstance
from eventpilot.models.registration import (
    Registration,
    RegistrationField,
    RegistrationFieldResponse,
    RegistrationPeriod,
    RegistrationPeriodPricing,
    RegistrationTier,
)
from eventpilot.models.upsell import UpsellItem, RegistrationUpsell
from eventpilot.models.coupon import Coupon
from eventpilot.models.ledger_item import LedgerItem
from eventpilot.models.crm_person import CrmPerson, CrmPersonEmail
from eventpilot.models.conversation import (
    Conversation,
    Email,
    InboundEmail,
    InboundEmailAttachment,
    InboundEmailParticipant,
)
from eventpilot.models.gmail_connection import GmailConnection
from eventpilot.models.log import Log
from eventpilot.models.enums import (
    CouponAppliesTo,
    CrmPersonSource,
    DiscountType,
    FieldRole,
    FieldType,
    LedgerItemSource,
    LogType,
    ParticipantKind,
    PaymentState,
    RecordStatus,
)
