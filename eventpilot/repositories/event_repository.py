from typing import Optional
from eventpilot.models import Event, EventInstance
from eventpilot.models.enums import RecordStatus


class EventRepository:
    @staticmethod
    def get_event(event_id: int) -> Optional[Event]:
        return Event.query.filter_by(id=event_id, status=RecordStatus.ACTIVE).first()

    @staticmethod
    def get_instance(event_id: int, instance_id: int) -> Optional[EventInstance]:
        return EventInstance.query.filter_by(
            id=instance_id, event_id=event_id, status=RecordStatus.ACTIVE
        ).first()
