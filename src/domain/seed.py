"""
Demo data and default prompts for a fresh database.
"""

import logging
from typing import Dict

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from persistence.models import AIPrompt, PromptType, Vendor
from services import prompts as prompt_service

logger = logging.getLogger(__name__)

DEFAULT_VENDORS = [
    {
        'name': 'TechSupply Pro',
        'email': 'sales@techsupplypro.com',
        'phone': '+1-555-0101',
        'address': '123 Tech Street, San Francisco, CA 94102',
        'contact_person': 'John Smith',
    },
    {
        'name': 'Global Electronics',
        'email': 'vendor@globalelectronics.com',
        'phone': '+1-555-0102',
        'address': '456 Commerce Ave, New York, NY 10001',
        'contact_person': 'Sarah Johnson',
    },
    {
        'name': 'Office Solutions Inc',
        'email': 'quotes@officesolutions.com',
        'phone': '+1-555-0103',
        'address': '789 Business Blvd, Austin, TX 78701',
        'contact_person': 'Mike Wilson',
    },
]

# prompt type -> (name, description)
DEFAULT_PROMPTS = {
    PromptType.RFP_CREATION: (
        'RFP Creation from Natural Language',
        'Converts natural language description into structured RFP',
    ),
    PromptType.PROPOSAL_PARSING: (
        'Proposal Parsing',
        'Parses vendor email responses into structured data',
    ),
    PromptType.PROPOSAL_COMPARISON: (
        'Proposal Comparison',
        'Compares multiple proposals and provides analysis',
    ),
    PromptType.RECOMMENDATION: (
        'Vendor Recommendation',
        'Provides final recommendation on which vendor to choose',
    ),
}


def _count(session: Session, model) -> int:
    return session.scalar(select(func.count()).select_from(model)) or 0


def seed_vendors(session: Session) -> int:
    if _count(session, Vendor):
        logger.info("Vendors already present, skipping vendor seed")
        return 0

    for vendor in DEFAULT_VENDORS:
        session.add(Vendor(**vendor))
    session.flush()
    logger.info(f"Seeded {len(DEFAULT_VENDORS)} vendor(s)")
    return len(DEFAULT_VENDORS)


def seed_prompts(session: Session) -> int:
    if _count(session, AIPrompt):
        logger.info("Prompts already present, skipping prompt seed")
        return 0

    for prompt_type, (name, description) in DEFAULT_PROMPTS.items():
        template = prompt_service.load_default_template(prompt_type)
        session.add(AIPrompt(
            name=name,
            description=description,
            prompt_type=prompt_type,
            template=template,
            is_active=True,
        ))
    session.flush()
    prompt_service.clear_cache()
    logger.info(f"Seeded {len(DEFAULT_PROMPTS)} prompt(s)")
    return len(DEFAULT_PROMPTS)


def seed_database(session: Session) -> Dict[str, int]:
    """
    Seed demo vendors and default prompts into empty tables.

    Failures are logged and reported as zero counts; startup continues.

    Returns:
        Dict with the number of vendors and prompts created
    """
    created = {'vendors': 0, 'prompts': 0}
    try:
        created['vendors'] = seed_vendors(session)
        created['prompts'] = seed_prompts(session)
        session.commit()
    except Exception as e:
        logger.error(f"Database seeding failed: {e}", exc_info=True)
        session.rollback()
        return {'vendors': 0, 'prompts': 0}
    return created
