"""
AI extraction adapter.

Sends a templated prompt to the language model and pulls a JSON object out of
the free-text reply. Every public function logs and re-raises on failure.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from integrations import bedrock_invocation
from persistence.models import RFP, PromptType
from services import prompts as prompt_service

logger = logging.getLogger(__name__)

# First "{" through the last "}" of the reply
_JSON_BLOCK = re.compile(r'\{[\s\S]*\}')


class AIExtractionError(Exception):
    """Raised when the model reply does not contain a usable JSON object."""
    pass


def extract_json(text: str) -> Dict[str, Any]:
    """
    Extract the JSON object embedded in a model reply.

    Args:
        text: Raw model reply (may wrap the JSON in prose or code fences)

    Returns:
        Dict parsed from the first "{" to the last "}"

    Raises:
        AIExtractionError: If no JSON block is found or it does not parse
    """
    match = _JSON_BLOCK.search(text or '')
    if not match:
        raise AIExtractionError("Failed to extract JSON from AI response")

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise AIExtractionError(f"AI response contained malformed JSON: {e}")

    if not isinstance(data, dict):
        raise AIExtractionError("AI response JSON is not an object")
    return data


def _run(session: Session, prompt_type: PromptType, **variables) -> Dict[str, Any]:
    template = prompt_service.load_prompt(session, prompt_type)
    prompt = prompt_service.format_prompt(template, **variables)
    response = bedrock_invocation.invoke_model(prompt)
    return extract_json(response)


def _format_budget(budget: Optional[float]) -> str:
    if budget is None:
        return 'Not specified'
    return f"${budget:,.2f}"


def parse_rfp(session: Session, natural_language_input: str) -> Dict[str, Any]:
    """Turn a buyer's free-text request into RFP fields."""
    try:
        return _run(
            session,
            PromptType.RFP_CREATION,
            input=natural_language_input,
            description=natural_language_input,
        )
    except Exception as e:
        logger.error(f"Error parsing RFP: {e}")
        raise


def parse_proposal(session: Session, email_content: str, rfp: RFP) -> Dict[str, Any]:
    """Turn a vendor's reply into structured proposal data."""
    try:
        return _run(
            session,
            PromptType.PROPOSAL_PARSING,
            emailContent=email_content,
            rfpRequirements=rfp.requirements or {},
            rfpTitle=rfp.title,
            rfpDescription=rfp.description,
        )
    except Exception as e:
        logger.error(f"Error parsing proposal: {e}")
        raise


def compare_proposals(
    session: Session,
    rfp: RFP,
    proposals: List[Dict[str, Any]]
) -> Dict[str, Any]:
    """Score proposals against the RFP requirements."""
    try:
        comparison = _run(
            session,
            PromptType.PROPOSAL_COMPARISON,
            rfpRequirements=rfp.requirements or {},
            proposals=proposals,
            rfpTitle=rfp.title,
            rfpDescription=rfp.description,
            rfpBudget=_format_budget(rfp.budget),
        )
        logger.info(f"Comparison returned keys: {sorted(comparison.keys())}")
        return comparison
    except Exception as e:
        logger.error(f"Error comparing proposals: {e}")
        raise


def _summarize_candidates(candidates: List[Dict[str, Any]]) -> str:
    def _or_na(value: Any) -> Any:
        return value if value not in (None, '') else 'N/A'

    return '\n\n'.join(
        f"Vendor {idx}: {c['vendorName']}\n"
        f"- Vendor ID: {c['vendorId']}\n"
        f"- Pricing: ${_or_na(c.get('pricing'))}\n"
        f"- Delivery Time: {_or_na(c.get('deliveryTime'))}\n"
        f"- Warranty: {_or_na(c.get('warranty'))}\n"
        f"- Payment Terms: {_or_na(c.get('paymentTerms'))}\n"
        f"- AI Score: {_or_na(c.get('aiScore'))}/100"
        for idx, c in enumerate(candidates, start=1)
    )


def _apply_fallback(
    recommendation: Dict[str, Any],
    candidates: List[Dict[str, Any]]
) -> Dict[str, Any]:
    """Replace a recommended vendor that is not among the candidates."""
    if not candidates:
        return recommendation

    exists = any(
        c['vendorName'] == recommendation.get('recommendedVendorName')
        or c['vendorId'] == recommendation.get('recommendedVendorId')
        for c in candidates
    )
    if exists:
        return recommendation

    logger.warning("AI recommended a vendor outside the candidates, falling back to highest scored vendor")
    top = candidates[0]
    for candidate in candidates[1:]:
        if (candidate.get('aiScore') or 0) > (top.get('aiScore') or 0):
            top = candidate

    recommendation['recommendedVendorId'] = top['vendorId']
    recommendation['recommendedVendorName'] = top['vendorName']
    recommendation['fallbackApplied'] = True
    return recommendation


def generate_recommendation(
    session: Session,
    rfp: RFP,
    candidates: List[Dict[str, Any]],
    comparison: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Ask the model to pick a winning vendor.

    Args:
        session: Database session
        rfp: The RFP being awarded
        candidates: Scored proposals (vendorId, vendorName, pricing, ..., aiScore)
        comparison: Output of compare_proposals, included as analysis context

    Returns:
        Dict with recommendedVendorId/recommendedVendorName guaranteed to name
        one of the candidates when any exist
    """
    try:
        analysis_parts = []
        if comparison:
            summary = comparison.get('summary') or comparison.get('analysis')
            if summary:
                analysis_parts.append(f"Comparison Summary:\n{summary}")
            if comparison.get('comparison'):
                analysis_parts.append(
                    f"Comparison Highlights: {json.dumps(comparison['comparison'], default=str)}"
                )
        analysis_parts.append(
            f"Available Vendors and Their Proposals:\n\n{_summarize_candidates(candidates)}"
        )
        analysis_parts.append(f"Requirements: {json.dumps(rfp.requirements or {}, default=str)}")

        logger.info("Sending recommendation prompt to AI...")
        recommendation = _run(
            session,
            PromptType.RECOMMENDATION,
            rfpTitle=rfp.title,
            rfpBudget=_format_budget(rfp.budget),
            comparisonAnalysis='\n\n'.join(analysis_parts),
        )
        return _apply_fallback(recommendation, candidates)
    except Exception as e:
        logger.error(f"Error generating recommendation: {e}")
        raise
