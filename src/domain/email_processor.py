"""
Proposal pipeline - turns vendor replies into proposals.

For each inbound email:
1. Check sender and body are present
2. Check the subject looks like an RFP reply
3. Match the sender to a registered vendor
4. Resolve which RFP the reply answers
5. Skip if the vendor already has a proposal for that RFP
6. Log the email, parse it with the AI adapter, create the proposal
7. Mark the email log processed

process_email() reports every outcome, including AI parsing failures, as a
ProcessingResult; process_mailbox() turns any other per-message error into a
FAILED result so the rest of the batch still runs. receive_email() is the
webhook variant and raises ValidationError instead of skipping.
"""

import logging
import os
import time
from typing import Any, Callable, ContextManager, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from persistence import database
from persistence.models import RFP, EmailDirection, EmailLog, Vendor
from services import ai_extraction
from services import email as email_service
from services.mailbox import MailboxWatcher

from . import correlator, proposals, vendors
from .errors import ValidationError
from .models import InboundEmail, PollSummary, ProcessingOutcome, ProcessingResult
from .validation import require_payload, require_string

logger = logging.getLogger(__name__)

INBOX_ADDRESS = os.environ.get('MAIL_IMAP_USER') or os.environ.get('MAIL_USER', '')


class ProposalProcessor:
    """
    Handles the inbound email -> proposal pipeline.

    Returns ProcessingResult for explicit success/failure handling.
    """

    def __init__(self, inbox_address: Optional[str] = None):
        self.inbox_address = inbox_address if inbox_address is not None else INBOX_ADDRESS

    def process_email(self, session: Session, email: InboundEmail) -> ProcessingResult:
        """
        Process a single inbound email.

        Args:
            session: Database session
            email: Parsed inbound email

        Returns:
            ProcessingResult; FAILED when AI parsing or storage fails
        """
        logger.info(f"Processing email from: {email.from_address}, subject: {email.subject}")

        def result(outcome: ProcessingOutcome, **kwargs) -> ProcessingResult:
            return ProcessingResult(
                outcome=outcome,
                from_address=email.from_address,
                subject=email.subject,
                **kwargs
            )

        if not email.from_address or not email.has_content:
            logger.warning("Email missing required fields (from/body), skipping")
            return result(ProcessingOutcome.MISSING_FIELDS)

        if not correlator.is_rfp_related(email.subject):
            logger.info("Email is not an RFP reply, skipping")
            return result(ProcessingOutcome.NOT_RFP_RELATED)

        vendor = vendors.find_by_email(session, email.from_address)
        if vendor is None:
            logger.warning(f"No vendor found with email: {email.from_address}")
            return result(ProcessingOutcome.UNKNOWN_VENDOR)

        outcome, rfp = self._resolve_rfp(session, vendor, email.subject)
        if rfp is None:
            return result(outcome, vendor_id=vendor.id)

        if proposals.find_for_pair(session, rfp.id, vendor.id):
            logger.warning(f"Proposal already exists for RFP {rfp.id} from vendor {vendor.name}")
            return result(ProcessingOutcome.DUPLICATE_PROPOSAL, vendor_id=vendor.id, rfp_id=rfp.id)

        email_log = self._log_inbound(session, email, rfp.id)

        try:
            proposal = self._create_proposal(session, email, rfp, vendor, email_log)
        except Exception as e:
            logger.error(f"Failed to create proposal from {email.from_address}: {e}", exc_info=True)
            session.rollback()
            return result(
                ProcessingOutcome.FAILED,
                vendor_id=vendor.id,
                rfp_id=rfp.id,
                email_log_id=email_log.id,
                error_message=str(e),
            )

        logger.info(f"Successfully created proposal {proposal.id} from email")
        return result(
            ProcessingOutcome.PROPOSAL_CREATED,
            vendor_id=vendor.id,
            rfp_id=rfp.id,
            proposal_id=proposal.id,
            email_log_id=email_log.id,
        )

    def receive_email(self, session: Session, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Webhook entry point: {from, subject, body, rfpId?}.

        Raises:
            ValidationError: If the vendor, RFP or pairing is not acceptable
        """
        data = require_payload(data)
        from_address = email_service.extract_address(require_string(data, 'from'))
        subject = data.get('subject') or ''
        body = require_string(data, 'body')

        vendor = vendors.find_by_email(session, from_address)
        if vendor is None:
            raise ValidationError(
                f"Vendor with email {from_address} not found. Please register the vendor first."
            )

        rfp_id = data.get('rfpId') or correlator.resolve_rfp_id(session, vendor, subject)
        if not rfp_id:
            raise ValidationError(
                "Could not determine which RFP this proposal is for. "
                "Please include the RFP ID in the subject."
            )

        rfp = session.get(RFP, rfp_id)
        if rfp is None:
            raise ValidationError(f"RFP with ID {rfp_id} not found.")

        if proposals.find_for_pair(session, rfp.id, vendor.id):
            raise ValidationError(f"Proposal from {vendor.name} for this RFP already exists.")

        email = InboundEmail(from_address=from_address, subject=subject, text_body=body)
        email_log = self._log_inbound(session, email, rfp.id)
        proposal = self._create_proposal(session, email, rfp, vendor, email_log)

        return {
            'message': 'Email received and proposal created successfully',
            'emailLog': email_log.to_dict(),
            'proposal': proposal.to_dict(),
            'parsedData': proposal.parsed_data,
        }

    def process_mailbox(
        self,
        watcher: MailboxWatcher,
        session_factory: Callable[[], ContextManager[Session]] = database.session_scope
    ) -> PollSummary:
        """
        Run one mailbox tick: fetch unseen messages and process each.

        A message is flagged \\Seen only when its result says it was handled;
        failures stay unseen and are retried on the next tick. An error on one
        message is recorded as a FAILED result and the tick moves on.
        """
        summary = PollSummary()
        start_time = time.time()

        with watcher:
            for uid, raw in watcher.fetch_unseen():
                summary.fetched += 1
                try:
                    email = InboundEmail.from_parsed(email_service.parse_inbound_email(raw))
                except Exception as e:
                    logger.error(f"Error parsing email UID {uid!r}: {e}", exc_info=True)
                    summary.results.append(ProcessingResult(
                        outcome=ProcessingOutcome.FAILED,
                        error_message=f"Unparseable message: {e}",
                    ))
                    continue

                try:
                    with session_factory() as session:
                        result = self.process_email(session, email)

                    if result.should_mark_seen:
                        watcher.mark_seen(uid)
                        summary.marked_seen += 1
                    summary.results.append(result)
                except Exception as e:
                    logger.error(f"Error processing email UID {uid!r}: {e}", exc_info=True)
                    summary.results.append(ProcessingResult(
                        outcome=ProcessingOutcome.FAILED,
                        error_message=f"Processing error: {e}",
                    ))

        logger.info(
            f"Mailbox tick complete in {time.time() - start_time:.2f}s: "
            f"fetched={summary.fetched}, created={summary.created}, "
            f"failed={summary.failed}, marked_seen={summary.marked_seen}"
        )
        return summary

    def _resolve_rfp(
        self,
        session: Session,
        vendor: Vendor,
        subject: str
    ) -> Tuple[Optional[ProcessingOutcome], Optional[RFP]]:
        rfp_id = correlator.resolve_rfp_id(session, vendor, subject)
        if not rfp_id:
            logger.warning(f"Could not determine RFP ID for email from {vendor.email}")
            return ProcessingOutcome.UNRESOLVED_RFP, None

        rfp = session.get(RFP, rfp_id)
        if rfp is None:
            logger.warning(f"RFP {rfp_id} not found")
            return ProcessingOutcome.RFP_NOT_FOUND, None
        return None, rfp

    def _log_inbound(self, session: Session, email: InboundEmail, rfp_id: str) -> EmailLog:
        """Record the inbound email and commit so it survives a failed parse."""
        email_log = EmailLog(
            from_email=email.from_address,
            to_email=self.inbox_address or None,
            subject=email.subject,
            body=email.body,
            direction=EmailDirection.INBOUND,
            rfp_id=rfp_id,
            processed=False,
        )
        session.add(email_log)
        session.commit()
        return email_log

    def _create_proposal(
        self,
        session: Session,
        email: InboundEmail,
        rfp: RFP,
        vendor: Vendor,
        email_log: EmailLog
    ):
        logger.info(f"Parsing proposal with AI for RFP {rfp.id}")
        parse_start = time.time()
        parsed_data = ai_extraction.parse_proposal(session, email.body, rfp)
        logger.info(f"AI parsing completed: {time.time() - parse_start:.3f}s")

        proposal = proposals.build_proposal(session, rfp, vendor, email.body, parsed_data)

        email_log.processed = True
        email_log.proposal_id = proposal.id
        session.commit()
        return proposal
