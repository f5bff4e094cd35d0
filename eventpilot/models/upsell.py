from eventpilot.extensions import db
from .enums import RecordStatus


class UpsellItem(db.Model):
    __tablename__ = "upsell_items"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False)
    name = db.Column(db.String(64), nullable=False)
    description = db.Column(db.String(512), nullable=False, default="")
    price = db.Column(db.Numeric(10, 2), nullable=False)
    # -1 means unlimited
    inventory = db.Column(db.Integer, nullable=False, default=-1)
    status = db.Column(db.Enum(RecordStatus), nullable=False, default=RecordStatus.ACTIVE)


class RegistrationUpsell(db.Model):
    """Price and quantity are captured when the registration is submitted and never recalculated."""

    __tablename__ = "registration_upsells"

    id = db.Column(db.Integer, primary_key=True)
    registration_id = db.Column(db.Integer, db.ForeignKey("registrations.id"), nullable=False)
    upsell_item_id = db.Column(db.Integer, db.ForeignKey("upsell_items.id"), nullable=False)
    price_snapshot = db.Column(db.Numeric(10, 2), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    upsell_item = db.relationship("UpsellItem")
