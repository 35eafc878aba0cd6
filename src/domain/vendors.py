"""
Vendor records.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from persistence.models import Proposal, Vendor

from .errors import ConflictError, NotFoundError
from .validation import (
    normalize_email,
    optional_string,
    require_payload,
    require_string,
)

logger = logging.getLogger(__name__)

_OPTIONAL_FIELDS = {
    'phone': 'phone',
    'address': 'address',
    'contactPerson': 'contact_person',
}


def find_by_email(session: Session, email: str) -> Optional[Vendor]:
    if not email:
        return None
    stmt = select(Vendor).where(func.lower(Vendor.email) == email.strip().lower())
    return session.scalars(stmt).first()


def _flush(session: Session) -> None:
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        raise ConflictError("Vendor with this email already exists")


def create_vendor(session: Session, data: Dict[str, Any]) -> Vendor:
    data = require_payload(data)
    email = normalize_email(require_string(data, 'email'))

    if find_by_email(session, email):
        raise ConflictError("Vendor with this email already exists")

    vendor = Vendor(name=require_string(data, 'name'), email=email)
    for key, attr in _OPTIONAL_FIELDS.items():
        setattr(vendor, attr, optional_string(data, key))

    session.add(vendor)
    _flush(session)
    logger.info(f"Vendor created: {vendor.id} ({vendor.email})")
    return vendor


def list_vendors(session: Session) -> List[Vendor]:
    return list(session.scalars(select(Vendor).order_by(Vendor.name.asc())))


def get_vendor(session: Session, vendor_id: str) -> Vendor:
    vendor = session.get(Vendor, vendor_id)
    if vendor is None:
        raise NotFoundError(f"Vendor with ID {vendor_id} not found")
    return vendor


def vendor_detail(vendor: Vendor) -> Dict[str, Any]:
    """Vendor plus the RFPs it was invited to and the proposals it sent."""
    result = vendor.to_dict()
    result['rfpVendors'] = [
        {**rv.to_dict(), 'rfp': rv.rfp.to_dict()} for rv in vendor.rfp_vendors
    ]
    result['proposals'] = [
        {**p.to_dict(), 'rfp': p.rfp.to_dict()} for p in vendor.proposals
    ]
    return result


def update_vendor(session: Session, vendor_id: str, data: Dict[str, Any]) -> Vendor:
    data = require_payload(data)
    vendor = get_vendor(session, vendor_id)

    if 'name' in data:
        vendor.name = require_string(data, 'name')
    if 'email' in data:
        email = normalize_email(require_string(data, 'email'))
        existing = find_by_email(session, email)
        if existing is not None and existing.id != vendor.id:
            raise ConflictError("Vendor with this email already exists")
        vendor.email = email
    for key, attr in _OPTIONAL_FIELDS.items():
        if key in data:
            setattr(vendor, attr, optional_string(data, key))

    _flush(session)
    return vendor


def delete_vendor(session: Session, vendor_id: str) -> Dict[str, str]:
    vendor = get_vendor(session, vendor_id)
    session.delete(vendor)
    session.flush()
    logger.info(f"Vendor deleted: {vendor_id}")
    return {'message': 'Vendor deleted successfully'}


def get_stats(session: Session) -> Dict[str, int]:
    total = session.scalar(select(func.count(Vendor.id))) or 0
    with_proposals = session.scalar(
        select(func.count(func.distinct(Proposal.vendor_id)))
    ) or 0
    return {
        'total': total,
        'withProposals': with_proposals,
        'withoutProposals': total - with_proposals,
    }
