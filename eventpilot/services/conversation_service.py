import logging
from datetime import datetime, timezone
from eventpilot.extensions import db
from eventpilot.exceptions import NotFoundError
from eventpilot.repositories.conversation_repository import ConversationRepository
from eventpilot.repositories.gmail_connection_repository import GmailConnectionRepository
from eventpilot.utils.addresses import normalize_mailbox

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _aware(value):
    if value is None:
        return _EPOCH
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _timeline(conversation):
    """(timestamp, message) pairs for every message in the thread, newest first."""
    messages = [(_aware(e.received_at), e.to_dict()) for e in conversation.inbound_emails]
    messages += [(_aware(e.created_at), e.to_dict()) for e in conversation.emails]
    return sorted(messages, key=lambda pair: pair[0], reverse=True)


def _participants(conversation, mailbox):
    excluded = normalize_mailbox(mailbox)
    participants = {}
    for inbound in conversation.inbound_emails:
        for participant in inbound.participants:
            key = normalize_mailbox(participant.email)
            if key == excluded or key in participants:
                continue
            participants[key] = {"email": participant.email, "name": participant.name}
    return list(participants.values())


def _summarize(conversation, mailbox):
    timeline = _timeline(conversation)
    latest = timeline[0] if timeline else None
    return {
        "id": conversation.id,
        "thread_id": conversation.mailbox_hash,
        "participants": _participants(conversation, mailbox),
        "contacts": [person.to_summary() for person in conversation.participants],
        "email_count": len(timeline),
        "subject": latest[1]["subject"] if latest else None,
        "has_unread": any(not e.read for e in conversation.inbound_emails),
        "has_attachments": any(e.attachments for e in conversation.inbound_emails),
        "last_activity_at": latest[0].isoformat() if latest else None,
    }


class ConversationService:
    @staticmethod
    def _mailbox(event_id):
        connection = GmailConnectionRepository.find_by_event(event_id)
        return connection.email if connection else None

    @staticmethod
    def list_conversations(event_id: int):
        """Conversation summaries ordered by most recent activity."""
        mailbox = ConversationService._mailbox(event_id)
        summaries = [
            _summarize(c, mailbox) for c in ConversationRepository.list_for_event(event_id)
        ]
        summaries.sort(key=lambda s: s["last_activity_at"] or "", reverse=True)
        return summaries

    @staticmethod
    def get_conversation(event_id: int, conversation_id: int):
        """Return one conversation with all of its messages and mark it read."""
        conversation = ConversationRepository.find_for_event(event_id, conversation_id)
        if not conversation:
            raise NotFoundError("Conversation not found")

        result = _summarize(conversation, ConversationService._mailbox(event_id))
        result["emails"] = [message for _, message in _timeline(conversation)]

        if result["has_unread"]:
            marked = ConversationRepository.mark_read(conversation)
            db.session.commit()
            logger.info(f"Marked {marked} emails read in conversation {conversation.id}")
        return result
