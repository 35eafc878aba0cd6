"""
RFP drafting, sending and statistics.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from persistence.models import (
    RFP,
    EmailDirection,
    EmailLog,
    RFPStatus,
    RFPVendor,
    Vendor,
)
from services import ai_extraction
from services import mailer

from .errors import NotFoundError, ValidationError
from .validation import (
    coerce_number,
    optional_number,
    parse_datetime,
    require_payload,
    require_string,
)

logger = logging.getLogger(__name__)


def _requirements(value: Any) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError("requirements must be an object")
    return value


def create_from_natural_language(session: Session, data: Dict[str, Any]) -> RFP:
    """Draft an RFP from a free-text procurement request."""
    data = require_payload(data)
    text = require_string(data, 'naturalLanguageInput')

    logger.info("Parsing natural language input with AI...")
    parsed = ai_extraction.parse_rfp(session, text)

    title = parsed.get('title')
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("AI response did not include an RFP title")

    try:
        deadline = parse_datetime(parsed.get('deadline'))
    except ValidationError:
        # Models sometimes answer with a period ("30 days") instead of a date
        logger.warning(f"Ignoring non-ISO deadline from AI: {parsed.get('deadline')!r}")
        deadline = None

    requirements = parsed.get('requirements')
    rfp = RFP(
        title=title.strip(),
        description=str(parsed.get('description') or text),
        budget=coerce_number(parsed.get('budget')),
        deadline=deadline,
        requirements=requirements if isinstance(requirements, dict) else {},
        status=RFPStatus.DRAFT,
    )
    session.add(rfp)
    session.flush()
    logger.info(f"RFP created: {rfp.id}")
    return rfp


def create_rfp(session: Session, data: Dict[str, Any]) -> RFP:
    data = require_payload(data)
    rfp = RFP(
        title=require_string(data, 'title'),
        description=require_string(data, 'description'),
        budget=optional_number(data, 'budget'),
        deadline=parse_datetime(data.get('deadline')),
        requirements=_requirements(data.get('requirements')),
        status=RFPStatus.DRAFT,
    )
    session.add(rfp)
    session.flush()
    logger.info(f"RFP created: {rfp.id}")
    return rfp


def list_rfps(session: Session) -> List[RFP]:
    return list(session.scalars(select(RFP).order_by(RFP.created_at.desc())))


def get_rfp(session: Session, rfp_id: str) -> RFP:
    rfp = session.get(RFP, rfp_id)
    if rfp is None:
        raise NotFoundError(f"RFP with ID {rfp_id} not found")
    return rfp


def update_rfp(session: Session, rfp_id: str, data: Dict[str, Any]) -> RFP:
    data = require_payload(data)
    rfp = get_rfp(session, rfp_id)

    if 'title' in data:
        rfp.title = require_string(data, 'title')
    if 'description' in data:
        rfp.description = require_string(data, 'description')
    if 'budget' in data:
        rfp.budget = optional_number(data, 'budget')
    if data.get('deadline'):
        rfp.deadline = parse_datetime(data['deadline'])
    if 'requirements' in data and data['requirements'] is not None:
        rfp.requirements = _requirements(data['requirements'])
    if 'status' in data:
        try:
            rfp.status = RFPStatus(str(data['status']).upper())
        except ValueError:
            allowed = ', '.join(s.value for s in RFPStatus)
            raise ValidationError(f"status must be one of: {allowed}")

    session.flush()
    return rfp


def delete_rfp(session: Session, rfp_id: str) -> Dict[str, str]:
    rfp = get_rfp(session, rfp_id)
    session.delete(rfp)
    session.flush()
    logger.info(f"RFP deleted: {rfp_id}")
    return {'message': 'RFP deleted successfully'}


def _mark_sent(session: Session, rfp: RFP, vendor: Vendor, sent_at: datetime) -> None:
    stmt = select(RFPVendor).where(RFPVendor.rfp_id == rfp.id, RFPVendor.vendor_id == vendor.id)
    link = session.scalars(stmt).first()
    if link is None:
        link = RFPVendor(rfp_id=rfp.id, vendor_id=vendor.id)
        session.add(link)
    link.email_sent = True
    link.sent_at = sent_at


def send_to_vendors(session: Session, rfp_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Email the RFP to each listed vendor.

    A failure for one vendor is reported in its result entry and does not
    stop the others. The RFP moves to SENT once any vendor was reached.
    """
    data = require_payload(data)
    vendor_ids = data.get('vendorIds')
    if not isinstance(vendor_ids, list) or not vendor_ids:
        raise ValidationError("vendorIds must be a non-empty list")

    rfp = get_rfp(session, rfp_id)
    rfp_data = rfp.to_dict()
    results = []

    for vendor_id in vendor_ids:
        vendor = session.get(Vendor, vendor_id)
        if vendor is None:
            results.append({'vendorId': vendor_id, 'success': False, 'error': 'Vendor not found'})
            continue

        try:
            sent = mailer.send_rfp_email(vendor.email, rfp_data)
        except Exception as e:
            logger.error(f"Error sending RFP {rfp.id} to {vendor.email}: {e}", exc_info=True)
            results.append({
                'vendorId': vendor_id,
                'vendorName': vendor.name,
                'success': False,
                'error': str(e),
            })
            continue

        _mark_sent(session, rfp, vendor, datetime.now(timezone.utc))
        session.add(EmailLog(
            from_email=sent['from_address'],
            to_email=vendor.email,
            subject=sent['subject'],
            body=sent['body'],
            direction=EmailDirection.OUTBOUND,
            rfp_id=rfp.id,
            processed=True,
        ))
        session.flush()
        logger.info(f"RFP email sent to {vendor.email}")
        results.append({'vendorId': vendor_id, 'vendorName': vendor.name, 'success': True})

    if any(r['success'] for r in results):
        rfp.status = RFPStatus.SENT
        session.flush()

    return {'message': 'RFP sent to vendors', 'results': results}


def get_stats(session: Session) -> Dict[str, int]:
    counts = dict(
        session.execute(select(RFP.status, func.count(RFP.id)).group_by(RFP.status)).all()
    )
    return {
        'total': sum(counts.values()),
        'draft': counts.get(RFPStatus.DRAFT, 0),
        'sent': counts.get(RFPStatus.SENT, 0),
        'completed': counts.get(RFPStatus.COMPLETED, 0),
    }
