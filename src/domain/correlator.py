"""
Correlates an inbound vendor email with the RFP it answers.

Resolution order:
1. Explicit "[ID: <rfp id>]" tag in the subject (added to every outbound RFP)
2. The RFP most recently sent to the sender's vendor record
"""

import logging
import re
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from persistence.models import RFPVendor, Vendor

logger = logging.getLogger(__name__)

_RFP_ID_TAG = re.compile(r'\[ID:\s*([a-zA-Z0-9-]+)\]', re.IGNORECASE)


def is_rfp_related(subject: Optional[str]) -> bool:
    """
    Subject heuristic for vendor replies.

    Example:
        >>> is_rfp_related("Re: Office chairs")
        True
        >>> is_rfp_related("Newsletter")
        False
    """
    lowered = (subject or '').lower()
    return 'rfp' in lowered or 're:' in lowered


def extract_rfp_id(subject: Optional[str]) -> Optional[str]:
    """
    Pull the tagged RFP id out of a subject line.

    Example:
        >>> extract_rfp_id("Re: RFP: Laptops [ID: 4f1c-9a]")
        '4f1c-9a'
    """
    match = _RFP_ID_TAG.search(subject or '')
    return match.group(1) if match else None


def latest_sent_rfp_id(session: Session, vendor_id: str) -> Optional[str]:
    """Id of the RFP most recently emailed to the vendor, if any."""
    stmt = (
        select(RFPVendor.rfp_id)
        .where(RFPVendor.vendor_id == vendor_id, RFPVendor.email_sent.is_(True))
        .order_by(RFPVendor.sent_at.desc())
        .limit(1)
    )
    return session.scalars(stmt).first()


def resolve_rfp_id(session: Session, vendor: Vendor, subject: Optional[str]) -> Optional[str]:
    """
    Determine which RFP an email from ``vendor`` replies to.

    Returns:
        The RFP id, or None when neither a tag nor a sent RFP exists. The id
        is not checked for existence here.
    """
    rfp_id = extract_rfp_id(subject)
    if rfp_id:
        logger.info(f"RFP resolved from subject tag: {rfp_id}")
        return rfp_id

    rfp_id = latest_sent_rfp_id(session, vendor.id)
    if rfp_id:
        logger.info(f"RFP resolved from latest send to vendor {vendor.id}: {rfp_id}")
    return rfp_id
