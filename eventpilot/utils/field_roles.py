from dataclasses import dataclass
from typing import Dict, Optional
from flask import g
from eventpilot.models.enums import FieldRole, FieldType
from eventpilot.repositories.registration_repository import RegistrationRepository

_TYPE_ROLES = {
    FieldType.EMAIL: FieldRole.PARTICIPANT_EMAIL,
    FieldType.PHONE: FieldRole.PARTICIPANT_PHONE,
}

_LABEL_HINTS = {
    FieldRole.PARTICIPANT_NAME: ("name",),
    FieldRole.PARTICIPANT_EMAIL: ("email", "e-mail"),
    FieldRole.PARTICIPANT_PHONE: ("phone", "mobile"),
}


@dataclass
class ParticipantInfo:
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class FieldRoleMap:
    """Maps participant roles to registration field ids for one event instance.

    An explicit role tag on a field always wins. Untagged fields fall back to
    their type, then to label keywords, taking the first field in form order.
    """

    def __init__(self, fields):
        self.field_ids: Dict[FieldRole, int] = {}
        for field in fields:
            if field.role and field.role not in self.field_ids:
                self.field_ids[field.role] = field.id

        for field in fields:
            role = _TYPE_ROLES.get(field.type)
            if role and role not in self.field_ids:
                self.field_ids[role] = field.id

        for role, hints in _LABEL_HINTS.items():
            if role in self.field_ids:
                continue
            for field in fields:
                if field.type != FieldType.TEXT:
                    continue
                label = (field.label or "").lower()
                if any(hint in label for hint in hints):
                    self.field_ids[role] = field.id
                    break

    @classmethod
    def for_instance(cls, event_id: int, instance_id: int) -> "FieldRoleMap":
        cache = g.setdefault("field_role_maps", {})
        key = (event_id, instance_id)
        if key not in cache:
            cache[key] = cls(RegistrationRepository.get_fields(event_id, instance_id))
        return cache[key]

    def field_id(self, role: FieldRole) -> Optional[int]:
        return self.field_ids.get(role)

    def participant(self, registration) -> ParticipantInfo:
        values = {r.field_id: r.value for r in registration.field_responses}

        def value_for(role):
            field_id = self.field_ids.get(role)
            value = values.get(field_id) if field_id else None
            return value.strip() if isinstance(value, str) and value.strip() else None

        return ParticipantInfo(
            name=value_for(FieldRole.PARTICIPANT_NAME),
            email=value_for(FieldRole.PARTICIPANT_EMAIL),
            phone=value_for(FieldRole.PARTICIPANT_PHONE),
        )
