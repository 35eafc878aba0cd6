"""
Comparison and recommendation pipeline.

Scoring is delegated to the language model; this module prepares the
candidate data, persists the returned scores and records the recommendation.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from persistence.models import RFP, Proposal, ProposalStatus
from services import ai_extraction

from . import proposals as proposal_service
from .errors import NotFoundError
from .validation import coerce_number

logger = logging.getLogger(__name__)


def _candidate(proposal: Proposal) -> Dict[str, Any]:
    return {
        'id': proposal.id,
        'vendorId': proposal.vendor_id,
        'vendorName': proposal.vendor.name,
        'pricing': proposal.pricing,
        'deliveryTime': proposal.delivery_time,
        'warranty': proposal.warranty,
        'paymentTerms': proposal.payment_terms,
        'aiScore': proposal.ai_score,
        'parsedData': proposal.parsed_data,
    }


def _score_value(score_data: Any) -> Optional[float]:
    if isinstance(score_data, dict):
        for key in ('overall', 'score', 'total'):
            if key in score_data:
                return coerce_number(score_data[key])
        return None
    return coerce_number(score_data)


def extract_scores(comparison: Dict[str, Any]) -> Dict[str, Optional[float]]:
    """
    Normalize the model's scores to {vendorId: score}.

    Accepts either a mapping keyed by vendor id, or a list of entries
    carrying "vendorId".

    Example:
        >>> extract_scores({'scores': [{'vendorId': 'v1', 'score': 85}]})
        {'v1': 85.0}
    """
    scores = comparison.get('scores')
    normalized: Dict[str, Optional[float]] = {}

    if isinstance(scores, dict):
        for vendor_id, score_data in scores.items():
            normalized[str(vendor_id)] = _score_value(score_data)
    elif isinstance(scores, list):
        for entry in scores:
            if isinstance(entry, dict) and entry.get('vendorId'):
                normalized[str(entry['vendorId'])] = _score_value(entry)

    return normalized


class ProposalEvaluator:
    """Runs AI comparison and recommendation over an RFP's proposals."""

    def _load(self, session: Session, rfp_id: str) -> RFP:
        rfp = session.get(RFP, rfp_id)
        if rfp is None:
            raise NotFoundError(f"RFP with ID {rfp_id} not found")
        return rfp

    def compare(self, session: Session, rfp_id: str) -> Dict[str, Any]:
        """
        Score every proposal for an RFP.

        Returns:
            {rfp, proposals, comparison}, or {message, comparison: None}
            when the RFP has no proposals

        Raises:
            NotFoundError: If the RFP does not exist
        """
        rfp = self._load(session, rfp_id)
        proposals = proposal_service.list_proposals(session, rfp_id)

        if not proposals:
            return {'message': 'No proposals found for this RFP', 'comparison': None}

        logger.info(f"Comparing {len(proposals)} proposal(s) with AI for RFP {rfp_id}...")
        comparison = ai_extraction.compare_proposals(
            session, rfp, [_candidate(p) for p in proposals]
        )

        by_vendor = {p.vendor_id: p for p in proposals}
        for vendor_id, score in extract_scores(comparison).items():
            proposal = by_vendor.get(vendor_id)
            if proposal is None:
                logger.warning(f"Comparison scored unknown vendor {vendor_id}, ignoring")
                continue
            proposal.ai_score = score
            proposal.status = ProposalStatus.UNDER_REVIEW
        session.flush()

        return {
            'rfp': rfp.to_dict(),
            'proposals': [p.to_dict() for p in proposal_service.list_proposals(session, rfp_id)],
            'comparison': comparison,
        }

    def recommend(self, session: Session, rfp_id: str) -> Dict[str, Any]:
        """
        Compare, then ask the model for a winner.

        The justification is stored on the recommended vendor's proposal.

        Returns:
            {rfp, proposals, comparison, recommendation}, or
            {message, recommendation: None} when there is nothing to compare
        """
        comparison_result = self.compare(session, rfp_id)
        comparison = comparison_result.get('comparison')
        if comparison is None:
            return {'message': 'No proposals to compare', 'recommendation': None}

        rfp = self._load(session, rfp_id)
        proposals = proposal_service.list_proposals(session, rfp_id)
        candidates = [_candidate(p) for p in proposals]

        logger.info("Generating recommendation with AI...")
        recommendation = ai_extraction.generate_recommendation(session, rfp, candidates, comparison)

        recommended = next(
            (
                p for p in proposals
                if p.vendor.name == recommendation.get('recommendedVendorName')
                or p.vendor_id == recommendation.get('recommendedVendorId')
            ),
            None,
        )
        if recommended is not None:
            recommended.ai_recommendation = (
                recommendation.get('justification') or recommendation.get('reasoning')
            )
            recommended.status = ProposalStatus.UNDER_REVIEW
            session.flush()
            logger.info(f"Recommended proposal {recommended.id} ({recommended.vendor.name})")

        return {
            'rfp': rfp.to_dict(),
            'proposals': [p.to_dict() for p in proposal_service.list_proposals(session, rfp_id)],
            'comparison': comparison,
            'recommendation': recommendation,
        }
