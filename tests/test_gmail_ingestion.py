import base64
import pytest
from unittest.mock import MagicMock
from eventpilot.exceptions import GmailConnectionError
from eventpilot.models import (
    Conversation,
    CrmPerson,
    CrmPersonEmail,
    Email,
    Event,
    GmailConnection,
    InboundEmail,
    InboundEmailAttachment,
    InboundEmailParticipant,
    Log,
)
from eventpilot.models.enums import CrmPersonSource, LogType, ParticipantKind
from eventpilot.services.crm_service import CrmService
from eventpilot.services.gmail_ingestion_service import GmailIngestionService, rewrite_cid_references
from tests.conftest import FakeGmailService, b64url, gmail_message

INBOUND = gmail_message(
    "g1",
    "t1",
    {
        "From": '"Rita Runner" <rita@example.com>',
        "To": "River Run <hello+2025@riverrun.org>",
        "Cc": "coach@example.com",
        "Subject": "Packet pickup?",
        "Message-ID": "<m1@example.com>",
    },
    text="When is pickup?",
)

OUTBOUND = gmail_message(
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

UNRELATED = gmail_message(
    "g3",
    "t2",
    {"From": "news@example.com", "To": "someone@example.com", "Subject": "Newsletter"},
)


@pytest.fixture
def gmail(monkeypatch, gmail_connection):
    def install(service):
        monkeypatch.setattr(
            "eventpilot.services.gmail_ingestion_service.get_gmail_client_for_event",
            lambda event_id: (service, gmail_connection),
        )
        return service

    return install


def two_page_service():
    return FakeGmailService(
        pages={
            None: {"messages": [{"id": "g1"}, {"id": "g3"}], "nextPageToken": "p2"},
            "p2": {"messages": [{"id": "g2"}]},
        },
        messages={"g1": INBOUND, "g2": OUTBOUND, "g3": UNRELATED},
    )


class TestIngestGmailWindow:
    def test_classifies_and_stores_messages(self, db, event_setup, gmail):
        service = gmail(two_page_service())

        result = GmailIngestionService.ingest_gmail_window(event_setup["event"].id, None)

        assert result == {"processed": 2}
        assert [c["q"] for c in service.list_calls] == ["-in:chats", "-in:chats"]
        assert [c["pageToken"] for c in service.list_calls] == [None, "p2"]

        inbound = InboundEmail.query.one()
        assert inbound.message_id == "<m1@example.com>"
        assert inbound.from_email == "rita@example.com"
        assert inbound.text_body == "When is pickup?"
        assert {p.kind for p in inbound.participants} == {
            ParticipantKind.FROM,
            ParticipantKind.TO,
            ParticipantKind.CC,
        }

        outbound = Email.query.one()
        assert outbound.message_id == "<m2@riverrun.org>"
        assert Conversation.query.count() == 1
        assert outbound.conversation_id == inbound.conversation_id

    def test_creates_contacts_for_external_participants(self, db, event_setup, gmail):
        gmail(two_page_service())
        GmailIngestionService.ingest_gmail_window(event_setup["event"].id, "newer_than:1d")

        emails = sorted(e.email for e in CrmPersonEmail.query.all())
        assert emails == ["coach@example.com", "rita@example.com"]
        rita = CrmPerson.query.filter_by(name="Rita Runner").one()
        assert rita.source == CrmPersonSource.EMAIL
        assert len(rita.inbound_emails) == 1
        assert Email.query.one().crm_person_id == rita.id

    def test_reingesting_window_creates_nothing(self, db, event_setup, gmail):
        gmail(two_page_service())
        GmailIngestionService.ingest_gmail_window(event_setup["event"].id, None)
        counts = (InboundEmail.query.count(), Email.query.count(), CrmPerson.query.count())

        gmail(two_page_service())
        result = GmailIngestionService.ingest_gmail_window(event_setup["event"].id, None)

        assert result == {"processed": 2}
        assert (InboundEmail.query.count(), Email.query.count(), CrmPerson.query.count()) == counts
        assert InboundEmailParticipant.query.count() == 3

    def test_failing_message_does_not_stop_window(self, db, event_setup, gmail):
        service = two_page_service()
        service.messages_by_id["g1"] = RuntimeError("gmail 500")
        gmail(service)

        result = GmailIngestionService.ingest_gmail_window(event_setup["event"].id, None)

        assert result == {"processed": 1}
        assert InboundEmail.query.count() == 0
        assert Email.query.count() == 1

    def test_contact_linking_failure_keeps_message(self, db, monkeypatch, event_setup, gmail):
        real_link = CrmService.link_inbound_email

        def link_then_fail(*args, **kwargs):
            real_link(*args, **kwargs)
            raise RuntimeError("crm unavailable")

        monkeypatch.setattr(CrmService, "link_inbound_email", staticmethod(link_then_fail))
        gmail(FakeGmailService(pages={None: {"messages": [{"id": "g1"}]}}, messages={"g1": INBOUND}))

        result = GmailIngestionService.ingest_gmail_window(event_setup["event"].id, None)

        assert result == {"processed": 1}
        inbound = InboundEmail.query.one()
        assert len(inbound.participants) == 3
        assert inbound.crm_persons == []
        assert CrmPerson.query.count() == 0
        assert Log.query.filter_by(type=LogType.CRM_PERSON_CREATED).count() == 0

    def test_recipient_linking_failure_keeps_outbound(self, db, monkeypatch, event_setup, gmail):
        def fail(*args, **kwargs):
            raise RuntimeError("crm unavailable")

        monkeypatch.setattr(CrmService, "link_outbound_recipients", staticmethod(fail))
        gmail(FakeGmailService(pages={None: {"messages": [{"id": "g2"}]}}, messages={"g2": OUTBOUND}))

        result = GmailIngestionService.ingest_gmail_window(event_setup["event"].id, None)

        assert result == {"processed": 1}
        assert Email.query.one().crm_person_id is None

    def test_comment_form_sender_is_stored_as_outbound(self, db, event_setup, gmail):
        message = gmail_message(
            "g7",
            "t7",
            {
                "From": "hello@riverrun.org (River Run)",
                "To": '"Runner, Rita" <rita@example.com>',
                "Subject": "Welcome",
                "Message-ID": "<m7@riverrun.org>",
            },
        )
        gmail(FakeGmailService(pages={None: {"messages": [{"id": "g7"}]}}, messages={"g7": message}))

        result = GmailIngestionService.ingest_gmail_window(event_setup["event"].id, None)

        assert result == {"processed": 1}
        assert Email.query.one().message_id == "<m7@riverrun.org>"
        assert InboundEmail.query.count() == 0

    def test_falls_back_to_gmail_id(self, db, event_setup, gmail):
        message = gmail_message(
            "g9", "t9", {"From": "rita@example.com", "To": "hello@riverrun.org", "Subject": "Hi"}
        )
        gmail(FakeGmailService(pages={None: {"messages": [{"id": "g9"}]}}, messages={"g9": message}))

        GmailIngestionService.ingest_gmail_window(event_setup["event"].id, None)
        assert InboundEmail.query.one().message_id == "g9"


class TestAttachments:
    def test_uploads_and_rewrites_inline_images(self, db, monkeypatch, event_setup, gmail):
        html = '<p>Map</p><img src="cid:map123">'
        message = gmail_message(
            "g5",
            "t5",
            {
                "From": "rita@example.com",
                "To": "hello@riverrun.org",
                "Subject": "Course map",
                "Message-ID": "<m5@example.com>",
            },
            parts=[
                {"mimeType": "text/html", "body": {"data": b64url(html)}},
                {
                    "mimeType": "image/png",
                    "filename": "map.png",
                    "headers": [{"name": "Content-ID", "value": "<map123>"}],
                    "body": {"attachmentId": "a1", "size": 4},
                },
                {
                    "mimeType": "application/pdf",
                    "filename": "waiver.pdf",
                    "body": {"attachmentId": "a2", "size": 10},
                },
            ],
        )
        png = base64.urlsafe_b64encode(b"\x89PNG").decode()
        gmail(
            FakeGmailService(
                pages={None: {"messages": [{"id": "g5"}]}},
                messages={"g5": message},
                attachments={"a1": {"data": png}, "a2": RuntimeError("attachment gone")},
            )
        )
        upload = MagicMock(return_value="https://files.example.com/map.png")
        monkeypatch.setattr(
            "eventpilot.services.gmail_ingestion_service.upload_email_attachment", upload
        )

        result = GmailIngestionService.ingest_gmail_window(event_setup["event"].id, None)

        assert result == {"processed": 1}
        assert upload.call_args.args[0] == b"\x89PNG"
        attachment = InboundEmailAttachment.query.one()
        assert attachment.filename == "map.png"
        assert attachment.location == "https://files.example.com/map.png"
        assert 'src="https://files.example.com/map.png"' in InboundEmail.query.one().html_body

    def test_rewrite_leaves_unknown_cids(self):
        html = "<img src='cid:known'><div style=\"background:url(cid:other)\"></div>"
        rewritten = rewrite_cid_references(html, {"known": "https://x/known.png"})
        assert 'src="https://x/known.png"' in rewritten
        assert "url(cid:other)" in rewritten


class TestPollAllMailboxes:
    def test_connection_failure_skips_event(self, db, monkeypatch, event_setup, gmail_connection):
        def broken(event_id):
            raise GmailConnectionError("revoked", code="GMAIL_REFRESH_FAILED")

        monkeypatch.setattr(
            "eventpilot.services.gmail_ingestion_service.get_gmail_client_for_event", broken
        )
        results = GmailIngestionService.poll_all_mailboxes()

        assert results == {event_setup["event"].id: {"skipped": "GMAIL_REFRESH_FAILED"}}

    def test_unexpected_failure_skips_only_that_event(self, db, monkeypatch, event_setup, gmail_connection):
        from google.auth.exceptions import TransportError

        other = Event(name="Trail Run", user_id=event_setup["event"].user_id)
        db.session.add(other)
        db.session.flush()
        db.session.add(
            GmailConnection(
                event_id=other.id,
                email="hello@riverrun.org",
                access_token="ya29.other",
                refresh_token="refresh",
            )
        )
        db.session.commit()
        first_id, other_id = event_setup["event"].id, other.id
        attempted = []

        def client_for(event_id):
            attempted.append(event_id)
            if event_id == first_id:
                raise TransportError("network unreachable")
            connection = GmailConnection.query.filter_by(event_id=event_id).one()
            service = FakeGmailService(pages={None: {"messages": [{"id": "g1"}]}}, messages={"g1": INBOUND})
            return service, connection

        monkeypatch.setattr(
            "eventpilot.services.gmail_ingestion_service.get_gmail_client_for_event", client_for
        )
        results = GmailIngestionService.poll_all_mailboxes()

        assert attempted == [first_id, other_id]
        assert results == {
            first_id: {"skipped": "GMAIL_POLL_FAILED"},
            other_id: {"processed": 1},
        }
        assert InboundEmail.query.one().event_id == other_id

    def test_cron_route_requires_secret(self, client):
        response = client.post("/api/webhooks/cron/gmail", headers={"X-Cron-Secret": "wrong"})
        assert response.status_code == 403

    def test_cron_route_polls(self, client, monkeypatch):
        poll = MagicMock(return_value={1: {"processed": 3}})
        monkeypatch.setattr(
            "eventpilot.services.gmail_ingestion_service.GmailIngestionService.poll_all_mailboxes", poll
        )
        response = client.post("/api/webhooks/cron/gmail", headers={"X-Cron-Secret": "cron-secret"})

        assert response.status_code == 200
        assert response.get_json() == {"events": {"1": {"processed": 3}}}
