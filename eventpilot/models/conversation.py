from eventpilot.extensions import db
from .enums import ParticipantKind
from .crm_person import conversation_crm_persons


class Conversation(db.Model):
    __tablename__ = "conversations"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False)
    # Gmail thread id
    mailbox_hash = db.Column(db.String(255), nullable=True)
    created_at = db.Column(
        db.TIMESTAMP(timezone=True), nullable=False, server_default=db.func.now()
    )

    inbound_emails = db.relationship("InboundEmail", backref="conversation", lazy=True)
    emails = db.relationship("Email", backref="conversation", lazy=True)
    participants = db.relationship("CrmPerson", secondary=conversation_crm_persons, lazy=True)

    __table_args__ = (
        db.UniqueConstraint("event_id", "mailbox_hash", name="uq_conversation_event_thread"),
    )


class InboundEmail(db.Model):
    __tablename__ = "inbound_emails"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False)
    conversation_id = db.Column(db.Integer, db.ForeignKey("conversations.id"), nullable=False)
    message_id = db.Column(db.String(512), nullable=False)
    from_email = db.Column(db.String(255), nullable=True)
    from_name = db.Column(db.String(255), nullable=True)
    subject = db.Column(db.Text, nullable=False, default="")
    original_recipient = db.Column(db.String(255), nullable=True)
    mailbox_hash = db.Column(db.String(255), nullable=True)
    received_at = db.Column(db.TIMESTAMP(timezone=True), nullable=False)
    text_body = db.Column(db.Text, nullable=True)
    html_body = db.Column(db.Text, nullable=True)
    read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(
        db.TIMESTAMP(timezone=True), nullable=False, server_default=db.func.now()
    )

    participants = db.relationship("InboundEmailParticipant", backref="inbound_email", lazy=True)
    attachments = db.relationship("InboundEmailAttachment", backref="inbound_email", lazy=True)

    def to_dict(self):
        return {
            "id": self.id,
            "type": "INBOUND",
            "message_id": self.message_id,
            "from": {"email": self.from_email, "name": self.from_name},
            "participants": [p.to_dict() for p in self.participants],
            "attachments": [a.to_dict() for a in self.attachments],
            "subject": self.subject,
            "text_body": self.text_body,
            "html_body": self.html_body,
            "read": self.read,
            "created_at": self.received_at.isoformat() if self.received_at else None,
        }

    __table_args__ = (
        db.UniqueConstraint("event_id", "message_id", name="uq_inbound_email_event_message"),
    )


class InboundEmailParticipant(db.Model):
    __tablename__ = "inbound_email_participants"

    id = db.Column(db.Integer, primary_key=True)
    inbound_email_id = db.Column(db.Integer, db.ForeignKey("inbound_emails.id"), nullable=False)
    kind = db.Column(db.Enum(ParticipantKind), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=True)

    def to_dict(self):
        return {"kind": self.kind.value, "email": self.email, "name": self.name}


class InboundEmailAttachment(db.Model):
    __tablename__ = "inbound_email_attachments"

    id = db.Column(db.Integer, primary_key=True)
    inbound_email_id = db.Column(db.Integer, db.ForeignKey("inbound_emails.id"), nullable=False)
    filename = db.Column(db.String(255), nullable=True)
    content_type = db.Column(db.String(255), nullable=True)
    size = db.Column(db.Integer, nullable=True)
    content_id = db.Column(db.String(255), nullable=True)
    location = db.Column(db.String(1024), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "filename": self.filename,
            "content_type": self.content_type,
            "size": self.size,
            "content_id": self.content_id,
            "location": self.location,
        }


class Email(db.Model):
    """Outbound message, either sent by the platform or observed in the connected mailbox."""

    __tablename__ = "emails"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey("conversations.id"), nullable=True)
    crm_person_id = db.Column(db.Integer, db.ForeignKey("crm_persons.id"), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    message_id = db.Column(db.String(512), nullable=True)
    from_address = db.Column(db.String(512), nullable=False)
    to_address = db.Column(db.Text, nullable=False)
    subject = db.Column(db.Text, nullable=False, default="")
    text_body = db.Column(db.Text, nullable=True)
    html_body = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.TIMESTAMP(timezone=True), nullable=False, server_default=db.func.now()
    )

    __table_args__ = (
        db.UniqueConstraint("event_id", "message_id", name="uq_email_event_message"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "type": "OUTBOUND",
            "message_id": self.message_id,
            "crm_person_id": self.crm_person_id,
            "from_address": self.from_address,
            "to_address": self.to_address,
            "subject": self.subject,
            "text_body": self.text_body,
            "html_body": self.html_body,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
