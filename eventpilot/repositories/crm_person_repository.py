from typing import List, Optional
from eventpilot.extensions import db
from eventpilot.models import CrmPerson, CrmPersonEmail
from eventpilot.models.enums import RecordStatus


class CrmPersonRepository:
    @staticmethod
    def find_by_email(event_id: int, email: str) -> Optional[CrmPerson]:
        """Case-insensitive lookup of a person by any of their active addresses."""
        if not email:
            return None
        return (
            db.session.query(CrmPerson)
            .join(CrmPersonEmail, CrmPersonEmail.crm_person_id == CrmPerson.id)
            .filter(
                CrmPerson.event_id == event_id,
                CrmPerson.status == RecordStatus.ACTIVE,
                CrmPersonEmail.status == RecordStatus.ACTIVE,
                db.func.lower(CrmPersonEmail.email) == email.strip().lower(),
            )
            .order_by(CrmPerson.id.asc())
            .first()
        )

    @staticmethod
    def find_email_records(event_id: int, emails: List[str]) -> List[CrmPersonEmail]:
        lowered = [e.lower() for e in emails if e]
        if not lowered:
            return []
        return (
            db.session.query(CrmPersonEmail)
            .join(CrmPerson, CrmPersonEmail.crm_person_id == CrmPerson.id)
            .filter(
                CrmPerson.event_id == event_id,
                CrmPerson.status == RecordStatus.ACTIVE,
                CrmPersonEmail.status == RecordStatus.ACTIVE,
                db.func.lower(CrmPersonEmail.email).in_(lowered),
            )
            .all()
        )

    @staticmethod
    def create(event_id: int, name: str, email: str, source, stripe_customer_id=None) -> CrmPerson:
        person = CrmPerson(
            event_id=event_id,
            name=(name or email)[:160],
            source=source,
            stripe_customer_id=stripe_customer_id,
        )
        db.session.add(person)
        db.session.flush()
        if email:
            db.session.add(CrmPersonEmail(crm_person_id=person.id, email=email))
            db.session.flush()
        return person
