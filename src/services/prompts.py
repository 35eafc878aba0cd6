"""
Prompt management utilities.

This module loads AI prompt templates with the following priority:
1. In-memory cache (TTL bound)
2. Active AIPrompt row for the prompt type (editable at runtime)
3. Local filesystem (prompts/ directory packaged with the Lambda)

Templates use {name} placeholders. Only supplied names are substituted so
literal JSON examples inside a template survive formatting.
"""

import json
import logging
import os
import re
import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from persistence.models import AIPrompt, PromptType

logger = logging.getLogger(__name__)

# Cache TTL in seconds (default: 5 minutes)
CACHE_TTL_SECONDS = int(os.environ.get('PROMPT_CACHE_TTL', '300'))

# Module-level cache: {cache_key: (prompt_content, timestamp)}
_prompt_cache: Dict[str, Tuple[str, float]] = {}

# src/services/prompts.py -> src/prompts/
PROMPTS_DIR = Path(__file__).parent.parent / 'prompts'

_PLACEHOLDER = re.compile(r'\{(\w+)\}')


class PromptNotFoundError(ValueError):
    """Raised when no template exists for a prompt type."""
    pass


def prompt_filename(prompt_type: PromptType) -> str:
    """Packaged default file for a prompt type, e.g. ``rfp_creation.txt``."""
    return f"{prompt_type.value.lower()}.txt"


def _load_from_filesystem(prompt_name: str) -> str:
    """
    Load prompt from local filesystem.

    Args:
        prompt_name: Name of the prompt file

    Returns:
        str: Prompt content

    Raises:
        FileNotFoundError: If prompt file doesn't exist
    """
    prompt_path = PROMPTS_DIR / prompt_name
    logger.info(f"Loading prompt from filesystem: {prompt_path}")

    with open(prompt_path, 'r', encoding='utf-8') as f:
        content = f.read()

    logger.info(f"Loaded prompt from filesystem: {len(content)} characters")
    return content


def _load_from_database(session: Session, prompt_type: PromptType) -> Optional[str]:
    """Return the template of the most recently updated active prompt, if any."""
    stmt = (
        select(AIPrompt)
        .where(AIPrompt.prompt_type == prompt_type, AIPrompt.is_active.is_(True))
        .order_by(AIPrompt.updated_at.desc())
        .limit(1)
    )
    prompt = session.scalars(stmt).first()
    if prompt is None:
        return None

    logger.info(f"Loaded prompt from database: {prompt.name} ({len(prompt.template)} characters)")
    return prompt.template


def load_default_template(prompt_type: PromptType) -> str:
    """
    Load the packaged default template for a prompt type.

    Raises:
        PromptNotFoundError: If the packaged file is missing
    """
    prompt_name = prompt_filename(prompt_type)
    try:
        return _load_from_filesystem(prompt_name)
    except FileNotFoundError:
        logger.error(f"Packaged prompt missing: {PROMPTS_DIR / prompt_name}")
        raise PromptNotFoundError(
            f"{prompt_type.value} prompt template not found"
        )


def load_prompt(session: Session, prompt_type: PromptType, use_cache: bool = True) -> str:
    """
    Load the template for a prompt type with caching and fallback.

    Priority: Cache -> active database prompt -> local filesystem

    Args:
        session: Database session
        prompt_type: Which pipeline step the template serves
        use_cache: Use cached version if available (default: True)

    Returns:
        str: Prompt template content

    Raises:
        PromptNotFoundError: If no template exists for the type
    """
    cache_key = f"prompt:{prompt_type.value}"
    current_time = time.time()

    if use_cache and cache_key in _prompt_cache:
        cached_content, cached_time = _prompt_cache[cache_key]
        age_seconds = current_time - cached_time

        if age_seconds < CACHE_TTL_SECONDS:
            logger.info(
                f"Using cached prompt: {prompt_type.value} "
                f"(age: {int(age_seconds)}s, TTL: {CACHE_TTL_SECONDS}s)"
            )
            return cached_content
        else:
            logger.info(
                f"Cache expired for prompt: {prompt_type.value} "
                f"(age: {int(age_seconds)}s > TTL: {CACHE_TTL_SECONDS}s), reloading..."
            )

    prompt_content = _load_from_database(session, prompt_type)

    if prompt_content is None:
        prompt_content = load_default_template(prompt_type)
        logger.info(f"No active database prompt, using packaged default: {prompt_type.value}")

    _prompt_cache[cache_key] = (prompt_content, current_time)

    return prompt_content


def _render_value(value: Any) -> str:
    if value is None:
        return 'N/A'
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def format_prompt(template: str, **variables) -> str:
    """
    Format prompt template with variables.

    Every {name} placeholder whose name is supplied is replaced; unknown
    placeholders and other braces are left untouched. Substituted values are
    not re-scanned, so user content containing "{variable}" stays literal.

    Args:
        template: The prompt template string (with {variable} placeholders)
        **variables: Variables to substitute in the template

    Returns:
        str: Formatted prompt

    Example:
        >>> format_prompt('Input: {input}\\nReturn {"title": "string"}', input="Laptops")
        'Input: Laptops\\nReturn {"title": "string"}'
    """
    rendered = {key: _render_value(value) for key, value in variables.items()}

    def _substitute(match: 're.Match') -> str:
        name = match.group(1)
        return rendered[name] if name in rendered else match.group(0)

    return _PLACEHOLDER.sub(_substitute, template)


def clear_cache() -> None:
    """
    Clear the prompt cache.

    Called whenever a stored prompt changes so the next load sees it.
    """
    _prompt_cache.clear()
    logger.info("Prompt cache cleared")
