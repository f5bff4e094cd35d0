from eventpilot.extensions import db
from .enums import RecordStatus


class GmailConnection(db.Model):
    __tablename__ = "gmail_connections"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False, unique=True)
    email = db.Column(db.String(255), nullable=False)
    access_token = db.Column(db.Text, nullable=False)
    refresh_token = db.Column(db.Text, nullable=True)
    token_expiry = db.Column(db.TIMESTAMP(timezone=True), nullable=True)
    scope = db.Column(db.Text, nullable=True)
    status = db.Column(db.Enum(RecordStatus), nullable=False, default=RecordStatus.ACTIVE)
    last_synced_at = db.Column(db.TIMESTAMP(timezone=True), nullable=True)
    created_at = db.Column(
        db.TIMESTAMP(timezone=True), nullable=False, server_default=db.func.now()
    )
