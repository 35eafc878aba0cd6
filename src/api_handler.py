"""
AWS Lambda handler for the procurement REST API (API Gateway proxy integration).

Thin routing layer: each route opens a database session, delegates to the
domain services and serializes the result. Domain errors map to their HTTP
status; anything else is a 500.
"""

import base64
import json
import logging
import os
import re
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple

from domain import prompt_library, proposals, rfps, vendors
from domain.email_processor import ProposalProcessor
from domain.errors import DomainError
from domain.evaluation import ProposalEvaluator
from domain.models import PollSummary
from domain.seed import seed_database
from integrations.bedrock_invocation import ThrottlingException
from persistence import database
from services.mailbox import MailboxWatcher

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

# Add console handler for local testing (AWS Lambda provides handlers automatically)
if not logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter('%(levelname)s - %(message)s')
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

# Environment variables
ENVIRONMENT = os.environ.get('ENVIRONMENT', 'dev')
SEED_ON_STARTUP = os.environ.get('SEED_ON_STARTUP', 'true').strip().lower() in ('1', 'true', 'yes', 'on')

CORS_HEADERS = {
    'Content-Type': 'application/json',
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Headers': 'Content-Type',
    'Access-Control-Allow-Methods': 'GET,POST,PUT,DELETE,OPTIONS',
}

# Initialize pipelines once at module level (reused across invocations)
proposal_processor = ProposalProcessor()
proposal_evaluator = ProposalEvaluator()

_initialized = False


def _initialize() -> None:
    """Create tables and seed demo data on cold start."""
    global _initialized
    if _initialized:
        return
    database.init_db()
    if SEED_ON_STARTUP:
        with database.session_scope() as session:
            created = seed_database(session)
        logger.info(f"Startup seed: {created}")
    _initialized = True


def _response(status_code: int, body: Any) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': CORS_HEADERS,
        'body': json.dumps(body, default=str),
    }


# Route handlers: (session, path params, query params, body) -> (status, body)

RouteResult = Tuple[int, Any]


def _create_rfp_from_nl(session, params, query, body) -> RouteResult:
    return 201, rfps.create_from_natural_language(session, body).to_dict()


def _create_rfp(session, params, query, body) -> RouteResult:
    return 201, rfps.create_rfp(session, body).to_dict()


def _list_rfps(session, params, query, body) -> RouteResult:
    return 200, [rfp.to_dict(include_related=True) for rfp in rfps.list_rfps(session)]


def _rfp_stats(session, params, query, body) -> RouteResult:
    return 200, rfps.get_stats(session)


def _get_rfp(session, params, query, body) -> RouteResult:
    return 200, rfps.get_rfp(session, params['id']).to_dict(include_related=True)


def _update_rfp(session, params, query, body) -> RouteResult:
    return 200, rfps.update_rfp(session, params['id'], body).to_dict()


def _delete_rfp(session, params, query, body) -> RouteResult:
    return 200, rfps.delete_rfp(session, params['id'])


def _send_rfp(session, params, query, body) -> RouteResult:
    return 200, rfps.send_to_vendors(session, params['id'], body)


def _create_vendor(session, params, query, body) -> RouteResult:
    return 201, vendors.create_vendor(session, body).to_dict()


def _list_vendors(session, params, query, body) -> RouteResult:
    return 200, [vendor.to_dict() for vendor in vendors.list_vendors(session)]


def _vendor_stats(session, params, query, body) -> RouteResult:
    return 200, vendors.get_stats(session)


def _get_vendor(session, params, query, body) -> RouteResult:
    return 200, vendors.vendor_detail(vendors.get_vendor(session, params['id']))


def _update_vendor(session, params, query, body) -> RouteResult:
    return 200, vendors.update_vendor(session, params['id'], body).to_dict()


def _delete_vendor(session, params, query, body) -> RouteResult:
    return 200, vendors.delete_vendor(session, params['id'])


def _create_proposal(session, params, query, body) -> RouteResult:
    return 201, proposals.create_proposal(session, body).to_dict()


def _list_proposals(session, params, query, body) -> RouteResult:
    return 200, [p.to_dict() for p in proposals.list_proposals(session, query.get('rfpId'))]


def _get_proposal(session, params, query, body) -> RouteResult:
    return 200, proposals.proposal_detail(proposals.get_proposal(session, params['id']))


def _update_proposal(session, params, query, body) -> RouteResult:
    return 200, proposals.update_proposal(session, params['id'], body).to_dict()


def _delete_proposal(session, params, query, body) -> RouteResult:
    return 200, proposals.delete_proposal(session, params['id'])


def _compare_proposals(session, params, query, body) -> RouteResult:
    return 200, proposal_evaluator.compare(session, params['rfpId'])


def _recommend_proposal(session, params, query, body) -> RouteResult:
    return 200, proposal_evaluator.recommend(session, params['rfpId'])


def _create_prompt(session, params, query, body) -> RouteResult:
    return 201, prompt_library.create_prompt(session, body).to_dict()


def _list_prompts(session, params, query, body) -> RouteResult:
    return 200, [p.to_dict() for p in prompt_library.list_prompts(session, query.get('type'))]


def _get_prompt(session, params, query, body) -> RouteResult:
    return 200, prompt_library.get_prompt(session, params['id']).to_dict()


def _update_prompt(session, params, query, body) -> RouteResult:
    return 200, prompt_library.update_prompt(session, params['id'], body).to_dict()


def _delete_prompt(session, params, query, body) -> RouteResult:
    return 200, prompt_library.delete_prompt(session, params['id'])


def _receive_email(session, params, query, body) -> RouteResult:
    return 201, proposal_processor.receive_email(session, body)


def check_mailbox_now() -> Dict[str, Any]:
    """Run one mailbox tick immediately, outside the schedule."""
    if not MailboxWatcher.is_enabled():
        return {'enabled': False, 'message': 'IMAP polling is disabled'}
    try:
        result = proposal_processor.process_mailbox(MailboxWatcher()).to_dict()
    except Exception as e:
        logger.error(f"Manual mailbox check failed: {e}", exc_info=True)
        result = PollSummary().to_dict()
        result['error'] = str(e)
    return {'message': 'Email check completed', **result}


def _route(method: str, pattern: str, func: Callable) -> Tuple[str, Pattern, Callable]:
    regex = re.sub(r'\{(\w+)\}', r'(?P<\1>[^/]+)', pattern)
    return method, re.compile(f'^{regex}/?$'), func


# Static segments (stats, create-from-nl) are listed before their {id} siblings
ROUTES: List[Tuple[str, Pattern, Callable]] = [
    _route('POST', '/rfps/create-from-nl', _create_rfp_from_nl),
    _route('GET', '/rfps/stats', _rfp_stats),
    _route('POST', '/rfps', _create_rfp),
    _route('GET', '/rfps', _list_rfps),
    _route('POST', '/rfps/{id}/send', _send_rfp),
    _route('GET', '/rfps/{id}', _get_rfp),
    _route('PUT', '/rfps/{id}', _update_rfp),
    _route('DELETE', '/rfps/{id}', _delete_rfp),
    _route('GET', '/vendors/stats', _vendor_stats),
    _route('POST', '/vendors', _create_vendor),
    _route('GET', '/vendors', _list_vendors),
    _route('GET', '/vendors/{id}', _get_vendor),
    _route('PUT', '/vendors/{id}', _update_vendor),
    _route('DELETE', '/vendors/{id}', _delete_vendor),
    _route('POST', '/proposals/rfp/{rfpId}/compare', _compare_proposals),
    _route('POST', '/proposals/rfp/{rfpId}/recommend', _recommend_proposal),
    _route('POST', '/proposals', _create_proposal),
    _route('GET', '/proposals', _list_proposals),
    _route('GET', '/proposals/{id}', _get_proposal),
    _route('PUT', '/proposals/{id}', _update_proposal),
    _route('DELETE', '/proposals/{id}', _delete_proposal),
    _route('POST', '/prompts', _create_prompt),
    _route('GET', '/prompts', _list_prompts),
    _route('GET', '/prompts/{id}', _get_prompt),
    _route('PUT', '/prompts/{id}', _update_prompt),
    _route('DELETE', '/prompts/{id}', _delete_prompt),
    _route('POST', '/email/receive', _receive_email),
]


def match_route(method: str, path: str) -> Optional[Tuple[Callable, Dict[str, str]]]:
    """
    Find the handler for a method and path.

    Example:
        >>> func, params = match_route('GET', '/rfps/abc-123')
        >>> params
        {'id': 'abc-123'}
    """
    for route_method, regex, func in ROUTES:
        if route_method != method:
            continue
        match = regex.match(path)
        if match:
            return func, match.groupdict()
    return None


def _request_line(event: Dict[str, Any]) -> Tuple[str, str]:
    """Method and path for both REST (v1) and HTTP API (v2) payloads."""
    http = event.get('requestContext', {}).get('http', {})
    method = (event.get('httpMethod') or http.get('method') or 'GET').upper()
    path = event.get('path') or event.get('rawPath') or '/'
    stage = event.get('requestContext', {}).get('stage')
    if stage and stage != '$default' and path.startswith(f'/{stage}/'):
        path = path[len(stage) + 1:]
    return method, path


def _parse_body(event: Dict[str, Any]) -> Any:
    raw = event.get('body')
    if not raw:
        return {}
    if event.get('isBase64Encoded'):
        raw = base64.b64decode(raw).decode('utf-8')
    return json.loads(raw)


def health_check() -> Dict[str, Any]:
    """Simple health check for monitoring."""
    return _response(200, {
        'status': 'ok',
        'environment': ENVIRONMENT,
        'imapEnabled': MailboxWatcher.is_enabled(),
    })


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Dispatch an API Gateway proxy event to its route.

    Args:
        event: API Gateway proxy event
        context: Lambda context

    Returns:
        API Gateway proxy response
    """
    method, path = _request_line(event)
    logger.info(f"Environment: {ENVIRONMENT} - {method} {path}")

    if method == 'OPTIONS':
        return _response(200, {})
    if method == 'GET' and path.rstrip('/') == '/health':
        return health_check()

    try:
        _initialize()

        if method == 'POST' and path.rstrip('/') == '/email/check-now':
            return _response(200, check_mailbox_now())

        matched = match_route(method, path)
        if matched is None:
            return _response(404, {'error': f'Route not found: {method} {path}'})
        func, params = matched

        try:
            body = _parse_body(event)
        except ValueError:
            return _response(400, {'error': 'Request body must be valid JSON'})
        query = event.get('queryStringParameters') or {}

        with database.session_scope() as session:
            status_code, result = func(session, params, query, body)
        return _response(status_code, result)

    except DomainError as e:
        logger.warning(f"{type(e).__name__}: {e}")
        return _response(e.status_code, {'error': str(e)})

    except ThrottlingException as e:
        logger.warning(f"Model throttled: {e}")
        return _response(429, {'error': 'AI service is busy, please retry', 'message': str(e)})

    except Exception as e:
        logger.error(f"Error handling {method} {path}: {e}", exc_info=True)
        return _response(500, {'error': 'Internal server error', 'message': str(e)})
