from typing import List, Optional
from eventpilot.extensions import db
from eventpilot.models import GmailConnection
from eventpilot.models.enums import RecordStatus


class GmailConnectionRepository:
    @staticmethod
    def find_by_event(event_id: int) -> Optional[GmailConnection]:
        return GmailConnection.query.filter_by(
            event_id=event_id, status=RecordStatus.ACTIVE
        ).first()

    @staticmethod
    def list_active() -> List[GmailConnection]:
        return (
            GmailConnection.query.filter_by(status=RecordStatus.ACTIVE)
            .order_by(GmailConnection.id.asc())
            .all()
        )

    @staticmethod
    def update_tokens(connection: GmailConnection, access_token, expiry=None, refresh_token=None):
        connection.access_token = access_token
        if expiry is not None:
            connection.token_expiry = expiry
        if refresh_token:
            connection.refresh_token = refresh_token
        db.session.commit()
        return connection
