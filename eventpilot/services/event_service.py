from eventpilot.exceptions import NotFoundError, UnauthorizedError
from eventpilot.repositories.event_repository import EventRepository


class EventService:
    @staticmethod
    def get_managed_event(event_id: int, user_id):
        """Return the event if the user organizes it"""
        event = EventRepository.get_event(event_id)
        if not event:
            raise NotFoundError("Event not found")
        if user_id is None or str(event.user_id) != str(user_id):
            raise UnauthorizedError("You do not manage this event")
        return event
