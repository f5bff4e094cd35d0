import base64
import logging
from datetime import timezone
from flask import current_app
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from eventpilot.exceptions import GmailConnectionError
from eventpilot.repositories.gmail_connection_repository import GmailConnectionRepository

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


def decode_base64url(data) -> bytes:
    if not data:
        return b""
    value = str(data)
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


def decode_base64url_text(data):
    if not data:
        return None
    return decode_base64url(data).decode("utf-8", errors="replace")


def get_header(part, name):
    """Case-insensitive header lookup on a Gmail message payload."""
    wanted = name.lower()
    for header in (part or {}).get("headers") or []:
        if str(header.get("name", "")).lower() == wanted:
            return header.get("value")
    return None


def extract_bodies_and_attachments(payload):
    """Walk a Gmail payload collecting the first text/html bodies and attachments."""
    found = {"text": None, "html": None, "attachments": []}

    def dig(part):
        if not part:
            return
        mime = part.get("mimeType") or ""
        if mime.startswith("multipart/"):
            for child in part.get("parts") or []:
                dig(child)
            return

        body = part.get("body") or {}
        if mime == "text/plain" and not found["text"] and body.get("data"):
            found["text"] = decode_base64url_text(body["data"])
        elif mime == "text/html" and not found["html"] and body.get("data"):
            found["html"] = decode_base64url_text(body["data"])

        # Inline images may have no filename but still carry a Content-ID
        if body.get("attachmentId"):
            size = body.get("size")
            found["attachments"].append(
                {
                    "filename": part.get("filename") or None,
                    "mime_type": mime or None,
                    "attachment_id": body["attachmentId"],
                    "size": size if isinstance(size, int) else None,
                    "content_id": get_header(part, "Content-ID"),
                }
            )

        for child in part.get("parts") or []:
            dig(child)

    dig(payload)
    return found


def build_credentials(connection) -> Credentials:
    expiry = connection.token_expiry
    if expiry is not None and expiry.tzinfo is not None:
        # google-auth compares expiry against naive UTC
        expiry = expiry.astimezone(timezone.utc).replace(tzinfo=None)
    return Credentials(
        token=connection.access_token,
        refresh_token=connection.refresh_token,
        token_uri=GOOGLE_TOKEN_URI,
        client_id=current_app.config.get("GOOGLE_OAUTH_CLIENT_ID"),
        client_secret=current_app.config.get("GOOGLE_OAUTH_CLIENT_SECRET"),
        scopes=connection.scope.split() if connection.scope else None,
        expiry=expiry,
    )


def refresh_if_needed(connection, credentials: Credentials):
    """Refresh expired credentials and store the new tokens on the connection."""
    if credentials.valid or not credentials.refresh_token:
        return credentials
    try:
        credentials.refresh(Request())
    except RefreshError as e:
        raise GmailConnectionError(
            f"Gmail credentials for event {connection.event_id} could not be refreshed: {e}",
            code="GMAIL_REFRESH_FAILED",
        )
    except TransportError as e:
        raise GmailConnectionError(
            f"Could not reach Google to refresh credentials for event {connection.event_id}: {e}",
            code="GMAIL_TRANSPORT_ERROR",
        )
    expiry = credentials.expiry.replace(tzinfo=timezone.utc) if credentials.expiry else None
    GmailConnectionRepository.update_tokens(
        connection,
        credentials.token,
        expiry=expiry,
        refresh_token=credentials.refresh_token,
    )
    logger.info(f"Refreshed Gmail access token for event {connection.event_id}")
    return credentials


def get_gmail_client_for_event(event_id: int):
    """Return ``(service, connection)`` for the event's connected mailbox."""
    connection = GmailConnectionRepository.find_by_event(event_id)
    if not connection:
        raise GmailConnectionError(
            "No Gmail connection found for event", code="NO_GMAIL_CONNECTION"
        )

    credentials = refresh_if_needed(connection, build_credentials(connection))
    service = build("gmail", "v1", credentials=credentials, cache_discovery=False)
    return service, connection
