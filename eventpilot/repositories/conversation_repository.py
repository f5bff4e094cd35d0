from typing import List, Optional
from eventpilot.extensions import db
from eventpilot.models import Conversation, Email, InboundEmail


class ConversationRepository:
    @staticmethod
    def get_or_create(event_id: int, thread_id: str) -> Conversation:
        conversation = None
        if thread_id:
            conversation = Conversation.query.filter_by(
                event_id=event_id, mailbox_hash=thread_id
            ).first()
        if conversation:
            return conversation
        conversation = Conversation(event_id=event_id, mailbox_hash=thread_id)
        db.session.add(conversation)
        db.session.flush()
        return conversation

    @staticmethod
    def inbound_exists(event_id: int, message_id: str) -> bool:
        return (
            db.session.query(InboundEmail.id)
            .filter_by(event_id=event_id, message_id=message_id)
            .first()
            is not None
        )

    @staticmethod
    def find_outbound(event_id: int, message_id: str) -> Optional[Email]:
        return Email.query.filter_by(event_id=event_id, message_id=message_id).first()

    @staticmethod
    def add(instance):
        db.session.add(instance)
        db.session.flush()
        return instance

    @staticmethod
    def list_for_event(event_id: int) -> List[Conversation]:
        return Conversation.query.filter_by(event_id=event_id).all()

    @staticmethod
    def find_for_event(event_id: int, conversation_id: int) -> Optional[Conversation]:
        return Conversation.query.filter_by(id=conversation_id, event_id=event_id).first()

    @staticmethod
    def mark_read(conversation: Conversation) -> int:
        return InboundEmail.query.filter_by(conversation_id=conversation.id, read=False).update(
            {"read": True}
        )
