"""
ORM entities for the procurement workflow.

Each entity exposes ``to_dict()`` producing the camelCase JSON shape
returned by the REST surface.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class RFPStatus(str, enum.Enum):
    DRAFT = 'DRAFT'
    SENT = 'SENT'
    COMPLETED = 'COMPLETED'


class ProposalStatus(str, enum.Enum):
    RECEIVED = 'RECEIVED'
    PARSED = 'PARSED'
    UNDER_REVIEW = 'UNDER_REVIEW'
    ACCEPTED = 'ACCEPTED'
    REJECTED = 'REJECTED'


class EmailDirection(str, enum.Enum):
    INBOUND = 'INBOUND'
    OUTBOUND = 'OUTBOUND'


class PromptType(str, enum.Enum):
    RFP_CREATION = 'RFP_CREATION'
    PROPOSAL_PARSING = 'PROPOSAL_PARSING'
    PROPOSAL_COMPARISON = 'PROPOSAL_COMPARISON'
    RECOMMENDATION = 'RECOMMENDATION'


class Base(DeclarativeBase):
    pass


class Vendor(Base):
    __tablename__ = 'vendors'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_person: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    rfp_vendors: Mapped[List['RFPVendor']] = relationship(
        back_populates='vendor', cascade='all, delete-orphan'
    )
    proposals: Mapped[List['Proposal']] = relationship(
        back_populates='vendor', cascade='all, delete-orphan'
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'address': self.address,
            'contactPerson': self.contact_person,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class RFP(Base):
    __tablename__ = 'rfps'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(500))
    description: Mapped[str] = mapped_column(Text, default='')
    budget: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    requirements: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    status: Mapped[RFPStatus] = mapped_column(Enum(RFPStatus), default=RFPStatus.DRAFT)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    rfp_vendors: Mapped[List['RFPVendor']] = relationship(
        back_populates='rfp', cascade='all, delete-orphan'
    )
    proposals: Mapped[List['Proposal']] = relationship(
        back_populates='rfp', cascade='all, delete-orphan'
    )
    email_logs: Mapped[List['EmailLog']] = relationship(back_populates='rfp')

    def to_dict(self, include_related: bool = False) -> Dict[str, Any]:
        result = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'budget': self.budget,
            'deadline': _iso(self.deadline),
            'requirements': self.requirements or {},
            'status': self.status.value,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }
        if include_related:
            result['rfpVendors'] = [rv.to_dict() for rv in self.rfp_vendors]
            result['proposals'] = [p.to_dict() for p in self.proposals]
        return result


class RFPVendor(Base):
    """Which vendors an RFP was sent to, and when."""

    __tablename__ = 'rfp_vendors'
    __table_args__ = (UniqueConstraint('rfp_id', 'vendor_id', name='uq_rfp_vendor'),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    rfp_id: Mapped[str] = mapped_column(ForeignKey('rfps.id'))
    vendor_id: Mapped[str] = mapped_column(ForeignKey('vendors.id'))
    email_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    rfp: Mapped[RFP] = relationship(back_populates='rfp_vendors')
    vendor: Mapped[Vendor] = relationship(back_populates='rfp_vendors')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'rfpId': self.rfp_id,
            'vendorId': self.vendor_id,
            'emailSent': self.email_sent,
            'sentAt': _iso(self.sent_at),
            'vendor': self.vendor.to_dict() if self.vendor else None,
        }


class Proposal(Base):
    __tablename__ = 'proposals'
    __table_args__ = (UniqueConstraint('rfp_id', 'vendor_id', name='uq_proposal_rfp_vendor'),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    rfp_id: Mapped[str] = mapped_column(ForeignKey('rfps.id'))
    vendor_id: Mapped[str] = mapped_column(ForeignKey('vendors.id'))
    raw_content: Mapped[str] = mapped_column(Text)
    parsed_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    pricing: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    delivery_time: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    warranty: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    ai_recommendation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[ProposalStatus] = mapped_column(
        Enum(ProposalStatus), default=ProposalStatus.RECEIVED
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    rfp: Mapped[RFP] = relationship(back_populates='proposals')
    vendor: Mapped[Vendor] = relationship(back_populates='proposals')
    email_logs: Mapped[List['EmailLog']] = relationship(back_populates='proposal')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'rfpId': self.rfp_id,
            'vendorId': self.vendor_id,
            'rawContent': self.raw_content,
            'parsedData': self.parsed_data,
            'pricing': self.pricing,
            'deliveryTime': self.delivery_time,
            'warranty': self.warranty,
            'paymentTerms': self.payment_terms,
            'aiScore': self.ai_score,
            'aiRecommendation': self.ai_recommendation,
            'status': self.status.value,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
            'vendor': self.vendor.to_dict() if self.vendor else None,
        }


class EmailLog(Base):
    __tablename__ = 'email_logs'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    from_email: Mapped[str] = mapped_column(String(255))
    to_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    subject: Mapped[str] = mapped_column(String(1000), default='')
    body: Mapped[str] = mapped_column(Text, default='')
    direction: Mapped[EmailDirection] = mapped_column(Enum(EmailDirection))
    rfp_id: Mapped[Optional[str]] = mapped_column(ForeignKey('rfps.id'), nullable=True)
    proposal_id: Mapped[Optional[str]] = mapped_column(ForeignKey('proposals.id'), nullable=True)
    processed: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    rfp: Mapped[Optional[RFP]] = relationship(back_populates='email_logs')
    proposal: Mapped[Optional[Proposal]] = relationship(back_populates='email_logs')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'fromEmail': self.from_email,
            'toEmail': self.to_email,
            'subject': self.subject,
            'body': self.body,
            'direction': self.direction.value,
            'rfpId': self.rfp_id,
            'proposalId': self.proposal_id,
            'processed': self.processed,
            'createdAt': _iso(self.created_at),
        }


class AIPrompt(Base):
    __tablename__ = 'ai_prompts'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    prompt_type: Mapped[PromptType] = mapped_column(Enum(PromptType), index=True)
    template: Mapped[str] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'promptType': self.prompt_type.value,
            'template': self.template,
            'isActive': self.is_active,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }
