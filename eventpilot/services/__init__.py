from eventpilot.services.user_service import UserService
from eventpilot.services.event_service import EventService
from eventpilot.services.pricing_service import PricingService
from eventpilot.services.coupon_service import CouponService
from eventpilot.services.ledger_service import LedgerService
from eventpilot.services.crm_service import CrmService
from eventpilot.services.payment_service import PaymentService, PaymentDecision
from eventpilot.services.registration_service import RegistrationService
from eventpilot.services.gmail_ingestion_service import GmailIngestionService
from eventpilot.services.conversation_service import ConversationService
