import pytest
from eventpilot.models import InboundEmail
from eventpilot.models.enums import DiscountType
from eventpilot.services.gmail_ingestion_service import GmailIngestionService
from eventpilot.services.registration_service import RegistrationService
from tests.conftest import FakeGmailService, gmail_message


@pytest.fixture
def thread(db, monkeypatch, event_setup, gmail_connection):
    """One Gmail thread holding an unread question and the organizer's reply."""
    question = gmail_message(
        "g1",
        "t1",
        {
            "From": '"Rita Runner" <rita@example.com>',
            "To": "hello+2025@riverrun.org",
            "Cc": "coach@example.com",
            "Subject": "Packet pickup?",
            "Message-ID": "<m1@example.com>",
        },
        text="When is pickup?",
        labels=["INBOX", "UNREAD"],
    )
    reply = gmail_message(
        "g2",
        "t1",
        {
            "From": "River Run <hello@riverrun.org>",
            "To": "rita@example.com",
            "Subject": "Re: Packet pickup?",
            "Message-ID": "<m2@riverrun.org>",
        },
        text="Friday at noon.",
    )
    reply["internalDate"] = "1735729200000"
    service = FakeGmailService(
        pages={None: {"messages": [{"id": "g1"}, {"id": "g2"}]}},
        messages={"g1": question, "g2": reply},
    )
    monkeypatch.setattr(
        "eventpilot.services.gmail_ingestion_service.get_gmail_client_for_event",
        lambda event_id: (service, gmail_connection),
    )
    GmailIngestionService.ingest_gmail_window(event_setup["event"].id, None)
    return InboundEmail.query.one().conversation_id


class TestConversationRoutes:
    def test_list_summaries(self, client, auth_headers, event_setup, thread):
        response = client.get(
            f"/api/events/{event_setup['event'].id}/conversations", headers=auth_headers
        )

        assert response.status_code == 200
        [conversation] = response.get_json()["conversations"]
        assert conversation["id"] == thread
        assert conversation["thread_id"] == "t1"
        assert conversation["email_count"] == 2
        assert conversation["subject"] == "Re: Packet pickup?"
        assert conversation["has_unread"] is True
        assert conversation["has_attachments"] is False
        assert sorted(p["email"] for p in conversation["participants"]) == [
            "coach@example.com",
            "rita@example.com",
        ]
        assert sorted(c["email"] for c in conversation["contacts"]) == [
            "coach@example.com",
            "rita@example.com",
        ]

    def test_detail_returns_messages_and_marks_read(self, client, auth_headers, event_setup, thread):
        response = client.get(
            f"/api/events/{event_setup['event'].id}/conversations/{thread}", headers=auth_headers
        )

        assert response.status_code == 200
        conversation = response.get_json()["conversation"]
        assert [e["type"] for e in conversation["emails"]] == ["OUTBOUND", "INBOUND"]
        inbound = conversation["emails"][1]
        assert inbound["from"] == {"email": "rita@example.com", "name": "Rita Runner"}
        assert {p["kind"] for p in inbound["participants"]} == {"FROM", "TO", "CC"}
        assert InboundEmail.query.one().read is True

    def test_unknown_conversation(self, client, auth_headers, event_setup):
        response = client.get(
            f"/api/events/{event_setup['event'].id}/conversations/999", headers=auth_headers
        )
        assert response.status_code == 404
        assert response.get_json() == {"message": "Conversation not found"}

    def test_requires_token(self, client, event_setup):
        response = client.get(f"/api/events/{event_setup['event'].id}/conversations")
        assert response.status_code == 401


class TestRegistrationListRoutes:
    @pytest.fixture
    def registrations(self, event_setup, registration_payload, make_coupon, stripe_mocks, sent_emails):
        make_coupon(code="FREE", discount_type=DiscountType.PERCENT, amount="100")
        pending = RegistrationService.submit_registration(
            event_setup["event"].id, registration_payload()
        )
        finalized = RegistrationService.submit_registration(
            event_setup["event"].id, registration_payload(coupon_code="FREE")
        )
        return pending["registration"]["id"], finalized["registration"]["id"]

    def test_lists_all_registrations(self, client, auth_headers, event_setup, registrations):
        response = client.get(
            f"/api/events/{event_setup['event'].id}/registrations", headers=auth_headers
        )

        assert response.status_code == 200
        body = response.get_json()
        assert body["total"] == 2
        assert body["page"] == 1
        assert sorted(r["id"] for r in body["registrations"]) == sorted(registrations)

    def test_filters_finalized(self, client, auth_headers, event_setup, registrations):
        response = client.get(
            f"/api/events/{event_setup['event'].id}/registrations",
            query_string={"finalized": "true"},
            headers=auth_headers,
        )

        [row] = response.get_json()["registrations"]
        assert row["id"] == registrations[1]
        assert row["finalized"] is True
        assert row["total"] == "0.00"
        assert row["coupon"]["code"] == "FREE"
        assert row["crm_person"]["name"] == "Rita Runner"
        assert row["crm_person"]["email"] == "rita@example.com"

    def test_pending_registration_has_no_contact(self, client, auth_headers, event_setup, registrations):
        response = client.get(
            f"/api/events/{event_setup['event'].id}/registrations",
            query_string={"finalized": "false"},
            headers=auth_headers,
        )

        [row] = response.get_json()["registrations"]
        assert row["id"] == registrations[0]
        assert row["payment_state"] == "Awaiting Payment"
        assert row["total"] == "50.00"
        assert row["coupon"] is None
        assert row["crm_person"] is None

    def test_other_organizer_is_forbidden(self, client, db, event_setup):
        from flask_jwt_extended import create_access_token
        from eventpilot.models import User

        stranger = User(email="x@example.com", password="x", first_name="X", last_name="Y")
        db.session.add(stranger)
        db.session.commit()
        headers = {"Authorization": f"Bearer {create_access_token(identity=str(stranger.id))}"}

        response = client.get(f"/api/events/{event_setup['event'].id}/registrations", headers=headers)
        assert response.status_code == 403
