"""
Data models for the inbound email domain.

These type-safe data structures define clear contracts between the mailbox
watcher, the correlator and the proposal pipeline.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Dict, Any


@dataclass
class Attachment:
    """
    Email attachment metadata.

    Attributes:
        filename: Original filename
        content_type: MIME type (e.g., "image/png", "application/pdf")
        size: Size in bytes
    """
    filename: str
    content_type: str
    size: int


@dataclass
class InboundEmail:
    """
    A vendor email as received from the mailbox or the webhook.

    Attributes:
        from_address: Sender address (lower-cased, without display name)
        subject: Email subject line
        text_body: Plain text body (empty string if not present)
        html_body: HTML body (empty string if not present)
        message_id: RFC 822 Message-ID, if known
        to_addresses: List of recipient addresses
        received_at: Date header, if parseable
        attachments: Attachment metadata
    """
    from_address: str
    subject: str
    text_body: str = ''
    html_body: str = ''
    message_id: str = ''
    to_addresses: List[str] = field(default_factory=list)
    received_at: Optional[datetime] = None
    attachments: List[Attachment] = field(default_factory=list)

    @classmethod
    def from_parsed(cls, parsed: Dict[str, Any]) -> 'InboundEmail':
        """Build from the dict returned by services.email.parse_inbound_email."""
        return cls(
            from_address=parsed.get('from_address', ''),
            subject=parsed.get('subject', ''),
            text_body=parsed.get('text_body', ''),
            html_body=parsed.get('html_body', ''),
            message_id=parsed.get('message_id', ''),
            to_addresses=list(parsed.get('to_addresses', [])),
            received_at=parsed.get('received_at'),
            attachments=[
                Attachment(
                    filename=att.get('filename', ''),
                    content_type=att.get('content_type', 'application/octet-stream'),
                    size=att.get('size', 0),
                )
                for att in parsed.get('attachments', [])
            ],
        )

    @property
    def body(self) -> str:
        """
        Best available body content for AI parsing.

        Priority: text_body > html_body > empty string
        """
        return self.text_body or self.html_body or ""

    @property
    def has_content(self) -> bool:
        """Check if email has any body content."""
        return bool(self.text_body or self.html_body)


class ProcessingOutcome(str, enum.Enum):
    """What the proposal pipeline did with an inbound email."""
    MISSING_FIELDS = 'MISSING_FIELDS'
    NOT_RFP_RELATED = 'NOT_RFP_RELATED'
    UNKNOWN_VENDOR = 'UNKNOWN_VENDOR'
    UNRESOLVED_RFP = 'UNRESOLVED_RFP'
    RFP_NOT_FOUND = 'RFP_NOT_FOUND'
    DUPLICATE_PROPOSAL = 'DUPLICATE_PROPOSAL'
    PROPOSAL_CREATED = 'PROPOSAL_CREATED'
    FAILED = 'FAILED'


# Outcomes after which the message must not be picked up again
_HANDLED_OUTCOMES = {
    ProcessingOutcome.UNRESOLVED_RFP,
    ProcessingOutcome.RFP_NOT_FOUND,
    ProcessingOutcome.DUPLICATE_PROPOSAL,
    ProcessingOutcome.PROPOSAL_CREATED,
}


@dataclass
class ProcessingResult:
    """
    Result of processing one inbound email.

    This explicit result type makes success/failure handling clear
    and prevents exceptions from being used for control flow.

    Attributes:
        outcome: What happened
        from_address: Sender address
        subject: Email subject
        vendor_id: Matched vendor, if any
        rfp_id: Resolved RFP, if any
        proposal_id: Created proposal, if any
        email_log_id: Inbound email log row, if one was written
        error_message: Error description (if processing failed)
    """
    outcome: ProcessingOutcome
    from_address: str = ''
    subject: str = ''
    vendor_id: Optional[str] = None
    rfp_id: Optional[str] = None
    proposal_id: Optional[str] = None
    email_log_id: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome != ProcessingOutcome.FAILED

    @property
    def should_mark_seen(self) -> bool:
        """True when the email was RFP-related and needs no further attempts."""
        return self.outcome in _HANDLED_OUTCOMES

    def to_dict(self) -> Dict[str, Any]:
        return {
            'outcome': self.outcome.value,
            'fromAddress': self.from_address,
            'subject': self.subject,
            'vendorId': self.vendor_id,
            'rfpId': self.rfp_id,
            'proposalId': self.proposal_id,
            'emailLogId': self.email_log_id,
            'error': self.error_message,
        }

    def __repr__(self) -> str:
        """Human-readable representation for logging."""
        if self.success:
            return f"ProcessingResult(outcome={self.outcome.value}, from={self.from_address})"
        else:
            return f"ProcessingResult(outcome=FAILED, from={self.from_address}, error={self.error_message})"


@dataclass
class PollSummary:
    """Counts for one mailbox tick."""
    enabled: bool = True
    fetched: int = 0
    marked_seen: int = 0
    results: List[ProcessingResult] = field(default_factory=list)

    @property
    def created(self) -> int:
        return sum(1 for r in self.results if r.outcome == ProcessingOutcome.PROPOSAL_CREATED)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'enabled': self.enabled,
            'fetched': self.fetched,
            'markedSeen': self.marked_seen,
            'proposalsCreated': self.created,
            'failed': self.failed,
            'results': [r.to_dict() for r in self.results],
        }
