"""
Stored AI prompt templates.

Every write clears the prompt cache so the pipelines pick up edits on the
next call.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from persistence.models import AIPrompt, PromptType
from services import prompts as prompt_service

from .errors import ConflictError, NotFoundError, ValidationError
from .validation import optional_bool, optional_string, require_payload, require_string

logger = logging.getLogger(__name__)


def parse_prompt_type(value: Any) -> PromptType:
    try:
        return PromptType(str(value).strip().upper())
    except ValueError:
        allowed = ', '.join(t.value for t in PromptType)
        raise ValidationError(f"promptType must be one of: {allowed}")


def _name_taken(session: Session, name: str, exclude_id: Optional[str] = None) -> bool:
    stmt = select(AIPrompt.id).where(AIPrompt.name == name)
    existing = session.scalars(stmt).first()
    return existing is not None and existing != exclude_id


def _flush(session: Session) -> None:
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        raise ConflictError("Prompt with this name already exists")


def create_prompt(session: Session, data: Dict[str, Any]) -> AIPrompt:
    data = require_payload(data)
    name = require_string(data, 'name')
    if _name_taken(session, name):
        raise ConflictError("Prompt with this name already exists")

    is_active = optional_bool(data, 'isActive')
    prompt = AIPrompt(
        name=name,
        description=optional_string(data, 'description'),
        prompt_type=parse_prompt_type(require_string(data, 'promptType')),
        template=require_string(data, 'template'),
        is_active=True if is_active is None else is_active,
    )
    session.add(prompt)
    _flush(session)
    prompt_service.clear_cache()
    logger.info(f"Prompt created: {prompt.name} ({prompt.prompt_type.value})")
    return prompt


def list_prompts(session: Session, prompt_type: Optional[str] = None) -> List[AIPrompt]:
    if prompt_type:
        stmt = (
            select(AIPrompt)
            .where(AIPrompt.prompt_type == parse_prompt_type(prompt_type))
            .order_by(AIPrompt.created_at.desc())
        )
    else:
        stmt = select(AIPrompt).order_by(AIPrompt.prompt_type.asc(), AIPrompt.name.asc())
    return list(session.scalars(stmt))


def get_prompt(session: Session, prompt_id: str) -> AIPrompt:
    prompt = session.get(AIPrompt, prompt_id)
    if prompt is None:
        raise NotFoundError(f"Prompt with ID {prompt_id} not found")
    return prompt


def update_prompt(session: Session, prompt_id: str, data: Dict[str, Any]) -> AIPrompt:
    data = require_payload(data)
    prompt = get_prompt(session, prompt_id)

    if 'name' in data:
        name = require_string(data, 'name')
        if _name_taken(session, name, exclude_id=prompt.id):
            raise ConflictError("Prompt with this name already exists")
        prompt.name = name
    if 'description' in data:
        prompt.description = optional_string(data, 'description')
    if 'template' in data:
        prompt.template = require_string(data, 'template')
    is_active = optional_bool(data, 'isActive')
    if is_active is not None:
        prompt.is_active = is_active

    _flush(session)
    prompt_service.clear_cache()
    return prompt


def delete_prompt(session: Session, prompt_id: str) -> Dict[str, str]:
    prompt = get_prompt(session, prompt_id)
    session.delete(prompt)
    session.flush()
    prompt_service.clear_cache()
    return {'message': 'Prompt deleted successfully'}
