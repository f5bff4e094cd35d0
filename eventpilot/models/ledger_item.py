from eventpilot.extensions import db
from .enums import LedgerItemSource


class LedgerItem(db.Model):
    """A financial record. Rows are written once and never updated."""

    __tablename__ = "ledger_items"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False)
    instance_id = db.Column(db.Integer, db.ForeignKey("event_instances.id"), nullable=True)
    registration_id = db.Column(db.Integer, db.ForeignKey("registrations.id"), nullable=True)
    crm_person_id = db.Column(db.Integer, db.ForeignKey("crm_persons.id"), nullable=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    original_amount = db.Column(db.Numeric(10, 2), nullable=True)
    source = db.Column(db.Enum(LedgerItemSource), nullable=False)
    stripe_payment_intent_id = db.Column(db.String(255), nullable=True, unique=True)
    created_at = db.Column(
        db.TIMESTAMP(timezone=True), nullable=False, server_default=db.func.now()
    )

    def to_dict(self):
        return {
            "id": self.id,
            "event_id": self.event_id,
            "registration_id": self.registration_id,
            "crm_person_id": self.crm_person_id,
            "amount": str(self.amount),
            "original_amount": str(self.original_amount) if self.original_amount is not None else None,
            "source": self.source.value,
            "stripe_payment_intent_id": self.stripe_payment_intent_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
