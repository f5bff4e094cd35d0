import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from googleapiclient.errors import HttpError
from eventpilot.extensions import db
from eventpilot.exceptions import GmailConnectionError
from eventpilot.models import Email, InboundEmail, InboundEmailAttachment, InboundEmailParticipant
from eventpilot.models.enums import LogType, ParticipantKind
from eventpilot.repositories.conversation_repository import ConversationRepository
from eventpilot.repositories.gmail_connection_repository import GmailConnectionRepository
from eventpilot.services.crm_service import CrmService
from eventpilot.utils.addresses import contains_mailbox, parse_address_list
from eventpilot.utils.gmail import (
    decode_base64url,
    extract_bodies_and_attachments,
    get_gmail_client_for_event,
    get_header,
)
from eventpilot.utils.log_buffer import LogBuffer
from eventpilot.utils.s3_utils import upload_email_attachment

logger = logging.getLogger(__name__)

DEFAULT_QUERY = "-in:chats"

_CID_SRC = re.compile(r"""src=["']cid:([^"']+)["']""", re.IGNORECASE)
_CID_URL = re.compile(r"""url\((['"]?)cid:([^'")]+)\1\)""", re.IGNORECASE)

INBOUND = "inbound"
OUTBOUND = "outbound"


def _strip_angles(value) -> str:
    return str(value or "").strip().lstrip("<").rstrip(">")


def rewrite_cid_references(html: Optional[str], cid_urls: Dict[str, str]) -> Optional[str]:
    """Point ``cid:`` image references at uploaded attachment URLs."""
    if not html or not cid_urls:
        return html

    def replace_src(match):
        url = cid_urls.get(_strip_angles(match.group(1)))
        return f'src="{url}"' if url else match.group(0)

    def replace_url(match):
        quote = match.group(1) or ""
        url = cid_urls.get(_strip_angles(match.group(2)))
        return f"url({quote}{url}{quote})" if url else match.group(0)

    return _CID_URL.sub(replace_url, _CID_SRC.sub(replace_src, html))


def parse_gmail_message(full: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a ``format=full`` Gmail message into the fields ingestion needs."""
    part = full.get("payload") or {}
    extracted = extract_bodies_and_attachments(part)
    internal_date = full.get("internalDate")
    received_at = (
        datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc)
        if internal_date
        else datetime.now(timezone.utc)
    )
    return {
        "id": full.get("id"),
        "thread_id": full.get("threadId"),
        "label_ids": full.get("labelIds") or [],
        "received_at": received_at,
        "message_id": get_header(part, "Message-ID") or full.get("id"),
        "subject": get_header(part, "Subject") or "",
        "from": get_header(part, "From") or "",
        "to": get_header(part, "To") or "",
        "cc": get_header(part, "Cc") or "",
        "bcc": get_header(part, "Bcc") or "",
        "text_body": extracted["text"],
        "html_body": extracted["html"],
        "attachments": extracted["attachments"],
    }


def classify_message(message: Dict[str, Any], connection_email: str) -> Optional[str]:
    from_list = parse_address_list(message["from"])
    if contains_mailbox(from_list, connection_email):
        return OUTBOUND
    recipients = parse_address_list(message["to"]) + parse_address_list(message["cc"])
    if contains_mailbox(recipients, connection_email):
        return INBOUND
    return None


class GmailIngestionService:
    @staticmethod
    def ingest_gmail_window(event_id: int, query: Optional[str] = None) -> Dict[str, int]:
        """Ingest every message matching ``query`` from the event's connected mailbox.

        Messages already stored for the event count as processed without
        creating anything, so a window can be re-ingested safely.
        """
        service, connection = get_gmail_client_for_event(event_id)
        query = query or DEFAULT_QUERY

        processed = 0
        page_token = None
        while True:
            try:
                listing = (
                    service.users()
                    .messages()
                    .list(userId="me", q=query, pageToken=page_token)
                    .execute()
                )
            except HttpError as e:
                status = e.resp.status if e.resp is not None else None
                code = "GMAIL_UNAUTHORIZED" if status in (401, 403) else f"GMAIL_HTTP_{status}"
                raise GmailConnectionError(
                    f"Could not list Gmail messages for event {event_id}: {e}", code=code
                )

            for summary in listing.get("messages") or []:
                try:
                    if GmailIngestionService.process_message(service, connection, summary["id"]):
                        processed += 1
                except Exception:
                    db.session.rollback()
                    logger.exception(
                        f"Failed to ingest Gmail message {summary.get('id')} for event {event_id}"
                    )

            page_token = listing.get("nextPageToken")
            if not page_token:
                break

        connection.last_synced_at = datetime.now(timezone.utc)
        db.session.commit()
        logger.info(f"Ingested {processed} Gmail messages for event {event_id} (q={query!r})")
        return {"processed": processed}

    @staticmethod
    def process_message(service, connection, gmail_id: str) -> bool:
        """Fetch, classify and store one message. Returns False when skipped."""
        full = (
            service.users()
            .messages()
            .get(userId="me", id=gmail_id, format="full")
            .execute()
        )
        message = parse_gmail_message(full)
        direction = classify_message(message, connection.email)
        if direction == INBOUND:
            GmailIngestionService._store_inbound(service, connection, message)
            return True
        if direction == OUTBOUND:
            GmailIngestionService._store_outbound(connection, message)
            return True
        return False

    @staticmethod
    def _store_inbound(service, connection, message):
        event_id = connection.event_id
        if ConversationRepository.inbound_exists(event_id, message["message_id"]):
            return None

        log_buffer = LogBuffer()
        from_list = parse_address_list(message["from"])
        conversation = ConversationRepository.get_or_create(event_id, message["thread_id"])
        sender = from_list[0] if from_list else (None, None)
        inbound = ConversationRepository.add(
            InboundEmail(
                event_id=event_id,
                conversation_id=conversation.id,
                message_id=message["message_id"],
                from_email=sender[0],
                from_name=sender[1],
                subject=message["subject"],
                original_recipient=connection.email,
                mailbox_hash=message["thread_id"],
                received_at=message["received_at"],
                text_body=message["text_body"],
                html_body=message["html_body"],
                read="UNREAD" not in message["label_ids"],
            )
        )

        participants = []
        for kind, header in (
            (ParticipantKind.FROM, "from"),
            (ParticipantKind.TO, "to"),
            (ParticipantKind.CC, "cc"),
            (ParticipantKind.BCC, "bcc"),
        ):
            addresses = parse_address_list(message[header])
            if kind == ParticipantKind.FROM:
                addresses = addresses[:1]
            for email, name in addresses:
                db.session.add(
                    InboundEmailParticipant(
                        inbound_email_id=inbound.id, kind=kind, email=email, name=name
                    )
                )
                participants.append((email, name))

        cid_urls = GmailIngestionService._store_attachments(service, inbound, message)
        inbound.html_body = rewrite_cid_references(inbound.html_body, cid_urls)

        try:
            with db.session.begin_nested():
                CrmService.link_inbound_email(
                    event_id, inbound, conversation, participants, connection.email, log_buffer=log_buffer
                )
        except Exception as e:
            log_buffer = LogBuffer()
            logger.warning(f"Could not link contacts for inbound {message['message_id']}: {e}")
        db.session.commit()
        log_buffer.flush()
        logger.info(f"Stored inbound email {inbound.id} ({message['message_id']}) for event {event_id}")
        return inbound

    @staticmethod
    def _store_attachments(service, inbound, message) -> Dict[str, str]:
        """Download and upload attachments; failures skip only that attachment."""
        cid_urls = {}
        for attachment in message["attachments"]:
            try:
                response = (
                    service.users()
                    .messages()
                    .attachments()
                    .get(userId="me", messageId=message["id"], id=attachment["attachment_id"])
                    .execute()
                )
                data = decode_base64url(response.get("data"))
                if not data:
                    continue
                location = upload_email_attachment(
                    data,
                    attachment["filename"],
                    attachment["mime_type"] or "application/octet-stream",
                    inbound.event_id,
                )
                db.session.add(
                    InboundEmailAttachment(
                        inbound_email_id=inbound.id,
                        filename=attachment["filename"],
                        content_type=attachment["mime_type"],
                        size=attachment["size"] or len(data),
                        content_id=attachment["content_id"],
                        location=location,
                    )
                )
                if attachment["content_id"]:
                    cid_urls[_strip_angles(attachment["content_id"])] = location
            except Exception as e:
                logger.warning(
                    f"Could not store attachment {attachment.get('filename')} "
                    f"of message {message['message_id']}: {e}"
                )
        return cid_urls

    @staticmethod
    def _store_outbound(connection, message):
        event_id = connection.event_id
        if ConversationRepository.find_outbound(event_id, message["message_id"]):
            return None

        conversation = ConversationRepository.get_or_create(event_id, message["thread_id"])
        recipients = (
            parse_address_list(message["to"])
            + parse_address_list(message["cc"])
            + parse_address_list(message["bcc"])
        )
        try:
            with db.session.begin_nested():
                primary = CrmService.link_outbound_recipients(event_id, conversation, recipients)
        except Exception as e:
            logger.warning(f"Could not link recipients of {message['message_id']}: {e}")
            primary = None

        email = ConversationRepository.add(
            Email(
                event_id=event_id,
                conversation_id=conversation.id,
                crm_person_id=primary.id if primary else None,
                message_id=message["message_id"],
                from_address=message["from"] or connection.email,
                to_address=message["to"],
                subject=message["subject"],
                text_body=message["text_body"],
                html_body=message["html_body"],
                created_at=message["received_at"],
            )
        )
        db.session.commit()

        log_buffer = LogBuffer()
        log_buffer.push(
            LogType.EMAIL_SENT,
            event_id=event_id,
            crm_person_id=email.crm_person_id,
            data={"email_id": email.id, "message_id": email.message_id},
        )
        log_buffer.flush()
        logger.info(f"Stored outbound email {email.id} ({message['message_id']}) for event {event_id}")
        return email

    @staticmethod
    def poll_all_mailboxes(query: Optional[str] = None) -> Dict[int, Any]:
        """Ingest each connected mailbox in turn; a broken connection only skips its event."""
        results = {}
        for connection in GmailConnectionRepository.list_active():
            event_id = connection.event_id
            try:
                results[event_id] = GmailIngestionService.ingest_gmail_window(event_id, query)
            except GmailConnectionError as e:
                db.session.rollback()
                logger.warning(f"Skipping Gmail poll for event {event_id}: {e.message}")
                results[event_id] = {"skipped": e.code or "GMAIL_CONNECTION_ERROR"}
            except Exception:
                db.session.rollback()
                logger.exception(f"Gmail poll failed for event {event_id}")
                results[event_id] = {"skipped": "GMAIL_POLL_FAILED"}
        return results
