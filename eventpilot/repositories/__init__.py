from eventpilot.repositories.user_repository import UserRepository
from eventpilot.repositories.event_repository import EventRepository
from eventpilot.repositories.registration_repository import RegistrationRepository
from eventpilot.repositories.coupon_repository import CouponRepository
from eventpilot.repositories.ledger_repository import LedgerRepository
from eventpilot.repositories.crm_person_repository import CrmPersonRepository
from eventpilot.repositories.conversation_repository import ConversationRepository
from eventpilot.repositories.gmail_connection_repository import GmailConnectionRepository
