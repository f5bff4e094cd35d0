import pytest
from decimal import Decimal
from eventpilot.models import CrmPerson, CrmPersonEmail, LedgerItem, Log, Registration
from eventpilot.models.enums import CrmPersonSource, LogType
from eventpilot.services.registration_service import RegistrationService
from eventpilot.utils.log_buffer import LogBuffer


@pytest.fixture
def pending_registration(db, event_setup, registration_payload, stripe_mocks):
    result = RegistrationService.submit_registration(event_setup["event"].id, registration_payload())
    return db.session.get(Registration, result["registration"]["id"])


class TestFinalizeRegistration:
    def test_manual_amount_creates_single_ledger_item(self, db, event_setup, pending_registration, sent_emails):
        event_id = event_setup["event"].id

        first = RegistrationService.finalize_registration(
            pending_registration.id, event_id, amount=Decimal("50.00")
        )
        second = RegistrationService.finalize_registration(
            pending_registration.id, event_id, amount=Decimal("50.00")
        )

        assert first == second
        assert LedgerItem.query.count() == 1
        item = LedgerItem.query.first()
        assert item.amount == Decimal("50.00")
        assert item.original_amount == Decimal("50.00")
        assert item.crm_person_id == first["crm_person_id"]
        assert len(sent_emails) == 1
        assert Log.query.filter_by(type=LogType.REGISTRATION_CONFIRMED).count() == 1

    def test_reuses_existing_contact(self, db, event_setup, pending_registration, sent_emails):
        person = CrmPerson(event_id=event_setup["event"].id, name="Rita", source=CrmPersonSource.EMAIL)
        db.session.add(person)
        db.session.flush()
        db.session.add(CrmPersonEmail(crm_person_id=person.id, email="RITA@example.com"))
        db.session.commit()

        result = RegistrationService.finalize_registration(
            pending_registration.id, event_setup["event"].id
        )

        assert result["crm_person_id"] == person.id
        assert CrmPerson.query.count() == 1
        assert db.session.get(Registration, pending_registration.id).crm_person_id == person.id

    def test_payment_confirmation_skips_ledger_and_stores_customer(
        self, db, event_setup, pending_registration, sent_emails
    ):
        result = RegistrationService.finalize_registration(
            pending_registration.id,
            event_setup["event"].id,
            amount=Decimal("50.00"),
            payment_confirmation={"id": "pi_test_123", "customer": "cus_test_1"},
        )

        assert LedgerItem.query.count() == 0
        assert db.session.get(CrmPerson, result["crm_person_id"]).stripe_customer_id == "cus_test_1"

    def test_email_failure_keeps_finalization(self, db, monkeypatch, event_setup, pending_registration):
        def fail(*args, **kwargs):
            raise RuntimeError("smtp down")

        monkeypatch.setattr(
            "eventpilot.services.registration_service.send_registration_confirmation_email", fail
        )
        RegistrationService.finalize_registration(pending_registration.id, event_setup["event"].id)

        assert db.session.get(Registration, pending_registration.id).finalized is True

    def test_database_failure_aborts(self, db, monkeypatch, event_setup, pending_registration, sent_emails):
        def fail(self):
            raise RuntimeError("database unavailable")

        with monkeypatch.context() as m:
            m.setattr(LogBuffer, "flush", fail)
            with pytest.raises(RuntimeError):
                RegistrationService.finalize_registration(
                    pending_registration.id, event_setup["event"].id, amount=Decimal("50.00")
                )

        registration = db.session.get(Registration, pending_registration.id)
        assert registration.finalized is False
        assert LedgerItem.query.count() == 0
        assert CrmPerson.query.count() == 0
        assert sent_emails == []


class TestLogBuffer:
    def test_flush_writes_pending_entries(self, db, event_setup):
        buffer = LogBuffer()
        buffer.push(LogType.COUPON_CREATED, event_id=event_setup["event"].id)
        buffer.push(LogType.COUPON_DELETED, event_id=event_setup["event"].id)

        assert buffer.flush() == 2
        assert len(buffer) == 0
        assert Log.query.count() == 2

    def test_failed_flush_requeues(self, db, monkeypatch, event_setup):
        buffer = LogBuffer()
        buffer.push(LogType.COUPON_CREATED, event_id=event_setup["event"].id)

        def fail():
            raise RuntimeError("write failed")

        with monkeypatch.context() as m:
            m.setattr(db.session, "commit", fail)
            with pytest.raises(RuntimeError):
                buffer.flush()

        assert len(buffer) == 1
        assert buffer.flush() == 1
        assert Log.query.count() == 1
