"""
AWS Lambda handler for the scheduled mailbox poll (EventBridge rate rule).

Thin orchestration layer that delegates to ProposalProcessor.
Policy: handled messages are flagged \\Seen; failures stay unseen and are
retried on the next tick. Errors logged to CloudWatch.
"""

import logging
from typing import Any, Dict

from domain.email_processor import ProposalProcessor
from domain.models import PollSummary, ProcessingOutcome
from persistence import database
from services.mailbox import MailboxWatcher

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

# Add console handler for local testing (AWS Lambda provides handlers automatically)
if not logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter('%(levelname)s - %(message)s')
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

# Initialize processor once at module level (reused across invocations)
proposal_processor = ProposalProcessor()


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Poll the vendor inbox once.

    Args:
        event: Scheduled event (contents ignored)
        context: Lambda context

    Returns:
        PollSummary as a dict
    """
    logger.info("=" * 70)
    logger.info("Mailbox Poller - Started")
    logger.info("=" * 70)

    if not MailboxWatcher.is_enabled():
        logger.info("IMAP polling disabled (MAIL_IMAP_ENABLED is not true), skipping")
        return PollSummary(enabled=False).to_dict()

    database.init_db()

    try:
        summary = proposal_processor.process_mailbox(MailboxWatcher())
    except Exception as e:
        # Connection or search failure; the next tick starts over
        logger.error(f"Mailbox poll failed: {e}", exc_info=True)
        result = PollSummary().to_dict()
        result['error'] = str(e)
        return result

    for result in summary.results:
        if result.outcome == ProcessingOutcome.PROPOSAL_CREATED:
            logger.info(f"✓ Created proposal {result.proposal_id} from {result.from_address}")
        elif not result.success:
            logger.warning(f"⚠ Message from {result.from_address} failed: {result.error_message}")

    # Log summary
    logger.info("=" * 70)
    logger.info(f"Mailbox poll complete: {summary.fetched} message(s)")
    logger.info(f"  Proposals created: {summary.created}")
    logger.info(f"  Errors: {summary.failed}")
    logger.info(f"  Marked seen: {summary.marked_seen}")
    logger.info("=" * 70)

    return summary.to_dict()
