from eventpilot.extensions import db
from .enums import RecordStatus, CrmPersonSource


inbound_email_crm_persons = db.Table(
    "inbound_email_crm_persons",
    db.Column("inbound_email_id", db.Integer, db.ForeignKey("inbound_emails.id"), primary_key=True),
    db.Column("crm_person_id", db.Integer, db.ForeignKey("crm_persons.id"), primary_key=True),
)

conversation_crm_persons = db.Table(
    "conversation_crm_persons",
    db.Column("conversation_id", db.Integer, db.ForeignKey("conversations.id"), primary_key=True),
    db.Column("crm_person_id", db.Integer, db.ForeignKey("crm_persons.id"), primary_key=True),
)


class CrmPerson(db.Model):
    __tablename__ = "crm_persons"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False)
    name = db.Column(db.String(160), nullable=False)
    source = db.Column(db.Enum(CrmPersonSource), nullable=False)
    stripe_customer_id = db.Column(db.String(255), nullable=True)
    status = db.Column(db.Enum(RecordStatus), nullable=False, default=RecordStatus.ACTIVE)
    created_at = db.Column(
        db.TIMESTAMP(timezone=True), nullable=False, server_default=db.func.now()
    )

    emails = db.relationship("CrmPersonEmail", backref="crm_person", lazy=True)
    registrations = db.relationship("Registration", backref="crm_person", lazy=True)
    inbound_emails = db.relationship(
        "InboundEmail", secondary=inbound_email_crm_persons, backref="crm_persons", lazy=True
    )

    def primary_email(self):
        for email in self.emails:
            if email.status == RecordStatus.ACTIVE:
                return email.email
        return None

    def to_summary(self):
        return {"id": self.id, "name": self.name, "email": self.primary_email()}


class CrmPersonEmail(db.Model):
    __tablename__ = "crm_person_emails"

    id = db.Column(db.Integer, primary_key=True)
    crm_person_id = db.Column(db.Integer, db.ForeignKey("crm_persons.id"), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    label = db.Column(db.String(64), nullable=True)
    status = db.Column(db.Enum(RecordStatus), nullable=False, default=RecordStatus.ACTIVE)
