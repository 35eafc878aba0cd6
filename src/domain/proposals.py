"""
Vendor proposals.

Proposals are created from free-text vendor replies: the text is parsed by
the AI adapter and the headline fields are copied onto the row.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from persistence.models import RFP, Proposal, ProposalStatus, Vendor
from services import ai_extraction

from .errors import ConflictError, NotFoundError, ValidationError
from .validation import coerce_number, optional_number, optional_string, require_payload, require_string

logger = logging.getLogger(__name__)

_TEXT_FIELDS = {
    'deliveryTime': 'delivery_time',
    'warranty': 'warranty',
    'paymentTerms': 'payment_terms',
}


def _as_text(value: Any) -> Optional[str]:
    if value is None or value == '':
        return None
    return value if isinstance(value, str) else str(value)


def find_for_pair(session: Session, rfp_id: str, vendor_id: str) -> Optional[Proposal]:
    stmt = select(Proposal).where(Proposal.rfp_id == rfp_id, Proposal.vendor_id == vendor_id)
    return session.scalars(stmt).first()


def build_proposal(
    session: Session,
    rfp: RFP,
    vendor: Vendor,
    raw_content: str,
    parsed_data: Dict[str, Any]
) -> Proposal:
    """Persist a PARSED proposal from AI-extracted data."""
    proposal = Proposal(
        rfp_id=rfp.id,
        vendor_id=vendor.id,
        raw_content=raw_content,
        parsed_data=parsed_data,
        pricing=coerce_number(parsed_data.get('pricing')),
        delivery_time=_as_text(parsed_data.get('deliveryTime')),
        warranty=_as_text(parsed_data.get('warranty')),
        payment_terms=_as_text(parsed_data.get('paymentTerms')),
        status=ProposalStatus.PARSED,
    )
    session.add(proposal)
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        raise ConflictError(f"Proposal from {vendor.name} for this RFP already exists")

    logger.info(f"Proposal created: {proposal.id} (rfp={rfp.id}, vendor={vendor.id})")
    return proposal


def create_proposal(session: Session, data: Dict[str, Any]) -> Proposal:
    """Create a proposal from pasted vendor text (manual entry path)."""
    data = require_payload(data)
    rfp_id = require_string(data, 'rfpId')
    vendor_id = require_string(data, 'vendorId')
    raw_content = require_string(data, 'rawContent')

    rfp = session.get(RFP, rfp_id)
    if rfp is None:
        raise NotFoundError(f"RFP with ID {rfp_id} not found")
    vendor = session.get(Vendor, vendor_id)
    if vendor is None:
        raise NotFoundError(f"Vendor with ID {vendor_id} not found")
    if find_for_pair(session, rfp_id, vendor_id):
        raise ConflictError(f"Proposal from {vendor.name} for this RFP already exists")

    logger.info("Parsing proposal with AI...")
    parsed_data = ai_extraction.parse_proposal(session, raw_content, rfp)
    return build_proposal(session, rfp, vendor, raw_content, parsed_data)


def list_proposals(session: Session, rfp_id: Optional[str] = None) -> List[Proposal]:
    stmt = select(Proposal).order_by(Proposal.created_at.desc())
    if rfp_id:
        stmt = stmt.where(Proposal.rfp_id == rfp_id)
    return list(session.scalars(stmt))


def get_proposal(session: Session, proposal_id: str) -> Proposal:
    proposal = session.get(Proposal, proposal_id)
    if proposal is None:
        raise NotFoundError(f"Proposal with ID {proposal_id} not found")
    return proposal


def proposal_detail(proposal: Proposal) -> Dict[str, Any]:
    result = proposal.to_dict()
    result['rfp'] = proposal.rfp.to_dict()
    return result


def update_proposal(session: Session, proposal_id: str, data: Dict[str, Any]) -> Proposal:
    data = require_payload(data)
    proposal = get_proposal(session, proposal_id)

    if 'pricing' in data:
        proposal.pricing = optional_number(data, 'pricing')
    for key, attr in _TEXT_FIELDS.items():
        if key in data:
            setattr(proposal, attr, optional_string(data, key))
    if 'status' in data:
        try:
            proposal.status = ProposalStatus(str(data['status']).upper())
        except ValueError:
            allowed = ', '.join(s.value for s in ProposalStatus)
            raise ValidationError(f"status must be one of: {allowed}")

    session.flush()
    return proposal


def delete_proposal(session: Session, proposal_id: str) -> Dict[str, str]:
    proposal = get_proposal(session, proposal_id)
    session.delete(proposal)
    session.flush()
    return {'message': 'Proposal deleted successfully'}
