"""
Decode raw RFC 822 bytes into a ParsedMessage.

Uses the standard library email package with the modern ``policy.default``
so headers come back decoded (encoded-words, folded lines) and address
headers render as display text.
"""

from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import parsedate_to_datetime
from typing import Optional

from app.models.email_sync import ParsedAttachment, ParsedMessage


class MessageParseError(Exception):
    """Raw bytes could not be decoded into a message."""


def _header(msg: EmailMessage, name: str) -> Optional[str]:
    value = msg.get(name)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_date(msg: EmailMessage):
    raw = msg.get("Date")
    if not raw:
        return None
    try:
        return parsedate_to_datetime(str(raw))
    except (TypeError, ValueError, IndexError):
        return None


def _body_content(part) -> Optional[str]:
    if part is None:
        return None
    try:
        return part.get_content()
    except (LookupError, UnicodeDecodeError):
        # Unknown charset: fall back to a lossy decode of the payload
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")


def _is_attachment(part, body_parts: list) -> bool:
    if any(part is body for body in body_parts):
        return False
    disposition = part.get_content_disposition()
    if disposition in ("attachment", "inline"):
        return True
    return part.get_content_maintype() != "text"


def _iter_attachment_parts(part, body_parts: list):
    """
    Yield the attachment parts below ``part``.

    Attached messages (message/rfc822 and friends) are yielded whole and never
    descended into; their own attachments belong to them.
    """
    for child in part.iter_parts():
        if child.get_content_maintype() == "message":
            yield child
        elif child.is_multipart():
            yield from _iter_attachment_parts(child, body_parts)
        elif _is_attachment(child, body_parts):
            yield child


def _payload_size(part) -> int:
    if part.get_content_maintype() == "message":
        inner = part.get_payload(0)
        return len(inner.as_bytes())
    return len(part.get_payload(decode=True) or b"")


def _to_attachment(part) -> ParsedAttachment:
    content_id = part.get("Content-ID")
    if content_id:
        content_id = str(content_id).strip().strip("<>") or None
    return ParsedAttachment(
        filename=part.get_filename(),
        content_type=part.get_content_type(),
        size=_payload_size(part),
        content_id=content_id,
        content_disposition=part.get_content_disposition(),
    )


def parse_message(raw: bytes) -> ParsedMessage:
    """
    Parse raw message bytes.

    Raises:
        MessageParseError: If raw is empty, not bytes, or cannot be parsed.
    """
    if not isinstance(raw, (bytes, bytearray)) or not raw.strip():
        raise MessageParseError("Empty or non-binary message source")

    try:
        msg = BytesParser(policy=policy.default).parsebytes(bytes(raw))
    except Exception as e:
        raise MessageParseError(f"Failed to parse message: {str(e)}")

    if not msg.keys():
        raise MessageParseError("Message has no headers")

    try:
        html_part = msg.get_body(preferencelist=("html",))
        text_part = msg.get_body(preferencelist=("plain",))
        body_parts = [html_part, text_part]
        if msg.is_multipart():
            attachment_parts = list(_iter_attachment_parts(msg, body_parts))
        elif _is_attachment(msg, body_parts):
            attachment_parts = [msg]
        else:
            attachment_parts = []
        attachments = [_to_attachment(part) for part in attachment_parts]
        return ParsedMessage(
            message_id=_header(msg, "Message-ID"),
            subject=_header(msg, "Subject"),
            from_text=_header(msg, "From"),
            to_text=_header(msg, "To"),
            date=_parse_date(msg),
            html=_body_content(html_part),
            text=_body_content(text_part),
            attachments=attachments,
        )
    except Exception as e:
        raise MessageParseError(f"Failed to decode message: {str(e)}")
