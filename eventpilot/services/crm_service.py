import logging
from typing import Iterable, List, Optional, Tuple
from eventpilot.models.enums import CrmPersonSource, LogType
from eventpilot.repositories.crm_person_repository import CrmPersonRepository
from eventpilot.utils.addresses import normalize_mailbox

logger = logging.getLogger(__name__)


class CrmService:
    @staticmethod
    def get_or_create_for_registration(
        event_id: int,
        email: Optional[str],
        name: Optional[str],
        stripe_customer_id: Optional[str] = None,
        log_buffer=None,
    ):
        """Find the event's contact for a participant email, creating one if needed."""
        person = CrmPersonRepository.find_by_email(event_id, email) if email else None
        if person:
            if stripe_customer_id and not person.stripe_customer_id:
                person.stripe_customer_id = stripe_customer_id
            return person, False

        person = CrmPersonRepository.create(
            event_id=event_id,
            name=name or email or "Unknown participant",
            email=email,
            source=CrmPersonSource.REGISTRATION,
            stripe_customer_id=stripe_customer_id,
        )
        if log_buffer is not None:
            log_buffer.push(
                LogType.CRM_PERSON_CREATED,
                event_id=event_id,
                crm_person_id=person.id,
                data={"source": CrmPersonSource.REGISTRATION.value},
            )
        return person, True

    @staticmethod
    def _distinct_external(addresses: Iterable[Tuple[str, str]], exclude: str) -> List[Tuple[str, str]]:
        excluded = normalize_mailbox(exclude)
        seen = set()
        distinct = []
        for email, name in addresses:
            key = email.lower()
            if key in seen or (excluded and normalize_mailbox(email) == excluded):
                continue
            seen.add(key)
            distinct.append((email, name))
        return distinct

    @staticmethod
    def link_inbound_email(event_id: int, inbound_email, conversation, addresses, connection_email, log_buffer=None):
        """Attach every external participant of an inbound email to a contact.

        Known addresses link to their existing contact; unknown ones create a
        contact sourced from email. The connected mailbox itself is skipped.
        Does not commit.
        """
        candidates = CrmService._distinct_external(addresses, connection_email)
        if not candidates:
            return []

        records = CrmPersonRepository.find_email_records(event_id, [e for e, _ in candidates])
        matched = {r.email.lower(): r.crm_person for r in records}

        people = []
        for email, name in candidates:
            person = matched.get(email.lower())
            if person is None:
                person = CrmPersonRepository.create(
                    event_id=event_id,
                    name=(name or "").strip() or email,
                    email=email,
                    source=CrmPersonSource.EMAIL,
                )
                matched[email.lower()] = person
                if log_buffer is not None:
                    log_buffer.push(
                        LogType.CRM_PERSON_CREATED,
                        event_id=event_id,
                        crm_person_id=person.id,
                        data={"source": CrmPersonSource.EMAIL.value},
                    )
            if person in people:
                continue
            people.append(person)
            if inbound_email not in person.inbound_emails:
                person.inbound_emails.append(inbound_email)
            if person not in conversation.participants:
                conversation.participants.append(person)
            if log_buffer is not None:
                log_buffer.push(
                    LogType.EMAIL_RECEIVED,
                    event_id=event_id,
                    crm_person_id=person.id,
                    inbound_email_id=inbound_email.id,
                )
        return people

    @staticmethod
    def link_outbound_recipients(event_id: int, conversation, recipients):
        """Return the first recipient with a contact and add known contacts to the conversation."""
        primary = None
        for email, _ in recipients:
            person = CrmPersonRepository.find_by_email(event_id, email)
            if person is None:
                continue
            if primary is None:
                primary = person
            if person not in conversation.participants:
                conversation.participants.append(person)
        return primary
