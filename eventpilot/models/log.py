from eventpilot.extensions import db
from .enums import LogType


class Log(db.Model):
    __tablename__ = "logs"

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.Enum(LogType), nullable=False)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    registration_id = db.Column(db.Integer, db.ForeignKey("registrations.id"), nullable=True)
    crm_person_id = db.Column(db.Integer, db.ForeignKey("crm_persons.id"), nullable=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=True)
    ledger_item_id = db.Column(db.Integer, db.ForeignKey("ledger_items.id"), nullable=True)
    inbound_email_id = db.Column(db.Integer, db.ForeignKey("inbound_emails.id"), nullable=True)
    data = db.Column(db.JSON, nullable=True)
    created_at = db.Column(
        db.TIMESTAMP(timezone=True), nullable=False, server_default=db.func.now()
    )
