"""
Email parsing utilities.

This module turns raw RFC 822 messages (as fetched over IMAP) into plain
dictionaries: sender, subject, message id, text/HTML body and attachments.
"""

import logging
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import getaddresses, parseaddr, parsedate_to_datetime
from typing import Dict, Any, List, Optional

logger = logging.getLogger(__name__)


def _decode_part(part: EmailMessage) -> str:
    try:
        # get_content() handles quoted-printable, base64, etc automatically
        return part.get_content()
    except Exception as e:
        logger.warning(f"Failed to decode {part.get_content_type()} part with get_content(): {e}")
        payload = part.get_payload(decode=True)
        if payload:
            return payload.decode('utf-8', errors='ignore')
        return ''


def _extract_parts(msg: EmailMessage) -> Dict[str, Any]:
    result = {
        'text_body': '',
        'html_body': '',
        'attachments': []
    }

    if msg.is_multipart():
        for part in msg.walk():
            if part.is_multipart():
                continue

            content_type = part.get_content_type()
            content_disposition = str(part.get("Content-Disposition", ""))
            filename = part.get_filename()

            # Attachments: explicit "attachment", "inline" with a filename, or
            # a named binary part without any disposition
            if "attachment" in content_disposition or (
                filename and ("inline" in content_disposition
                              or content_type.startswith(('image/', 'application/')))
            ):
                if filename:
                    content = part.get_payload(decode=True) or b''
                    result['attachments'].append({
                        'filename': filename,
                        'content_type': content_type,
                        'size': len(content),
                    })

            elif content_type == "text/plain" and not result['text_body']:
                result['text_body'] = _decode_part(part)

            elif content_type == "text/html" and not result['html_body']:
                result['html_body'] = _decode_part(part)
    else:
        content_type = msg.get_content_type()
        if content_type == "text/plain":
            result['text_body'] = _decode_part(msg)
        elif content_type == "text/html":
            result['html_body'] = _decode_part(msg)
        else:
            logger.warning(
                f"Unknown content type for non-multipart email: {content_type}. "
                f"Email body will be empty."
            )

    return result


def extract_address(header_value: Optional[str]) -> str:
    """
    Return the bare, lower-cased address from a From/To header value.

    Example:
        >>> extract_address('"Jane Doe" <Jane@Example.com>')
        'jane@example.com'
    """
    if not header_value:
        return ''
    _, address = parseaddr(str(header_value))
    return address.strip().lower()


def parse_inbound_email(email_content: bytes) -> Dict[str, Any]:
    """
    Parse a raw inbound message into headers plus body parts.

    Args:
        email_content: Raw email bytes

    Returns:
        Dict with from_address, to_addresses, subject, message_id,
        received_at (datetime or None), text_body, html_body, attachments
    """
    if not email_content:
        raise ValueError("Email content cannot be empty")

    msg = BytesParser(policy=policy.default).parsebytes(email_content)

    received_at = None
    date_header = msg.get('Date')
    if date_header:
        try:
            received_at = parsedate_to_datetime(str(date_header))
        except (TypeError, ValueError) as e:
            logger.warning(f"Unparseable Date header {date_header!r}: {e}")

    to_addresses: List[str] = [
        address.lower() for _, address in getaddresses([str(msg.get('To', ''))]) if address
    ]

    result = {
        'from_address': extract_address(msg.get('From')),
        'to_addresses': to_addresses,
        'subject': str(msg.get('Subject', '') or ''),
        'message_id': str(msg.get('Message-ID', '') or ''),
        'received_at': received_at,
    }
    result.update(_extract_parts(msg))

    logger.info(
        f"Parsed inbound email: from={result['from_address']}, "
        f"subject={result['subject'][:80]!r}, attachments={len(result['attachments'])}"
    )
    return result
