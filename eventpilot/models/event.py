from eventpilot.extensions import db
from .enums import RecordStatus


class Event(db.Model):
    __tablename__ = "events"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    stripe_connected_account_id = db.Column(db.String(255), nullable=True)
    status = db.Column(db.Enum(RecordStatus), nullable=False, default=RecordStatus.ACTIVE)
    created_at = db.Column(
        db.TIMESTAMP(timezone=True), nullable=False, server_default=db.func.now()
    )
    updated_at = db.Column(
        db.TIMESTAMP(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    instances = db.relationship("EventInstance", backref="event", lazy=True)


class EventInstance(db.Model):
    __tablename__ = "event_instances"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.Enum(RecordStatus), nullable=False, default=RecordStatus.ACTIVE)
    created_at = db.Column(
        db.TIMESTAMP(timezone=True), nullable=False, server_default=db.func.now()
    )
