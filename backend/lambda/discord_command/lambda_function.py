"""discord_command/lambda_function.py

Discord slash-command endpoint for the Factorio server (Lambda function URL /
API Gateway HTTP API proxy).

Commands:
    /factorio start <save>   — set the stack's ServerState to Running
    /factorio stop           — set the stack's ServerState to Stopped
    /factorio status (ip)    — report instance state and address

Auth:
    Ed25519 signature over X-Signature-Timestamp + raw body
    (X-Signature-Ed25519). Unauthenticated requests get 401.

Environment variables:
    DISCORD_PUBLIC_KEY      application public key (hex)
    STACK_NAME              default: factorio-ecs-spot
    INTERACTION_TABLE       default: discord-interaction-tokens
    ASG_NAME / ECS_CLUSTER / ECS_SERVICE   derived from STACK_NAME
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from factorio_shared.auth import RequestAuthenticator, SignedRequest
from factorio_shared.compute import ServerInfo
from factorio_shared.control_plane import StateTransitionOrchestrator
from factorio_shared.discord_api import error_reply
from factorio_shared.errors import AuthError
from factorio_shared.http_utils import _response, _unauthorized
from factorio_shared.ledger import InteractionLedger

from router import CommandRouter

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(logging.INFO)

# ---------------------------------------------------------------------------
# Lazy singletons (reused across warm invocations)
# ---------------------------------------------------------------------------

_authenticator = None
_router = None


def _get_authenticator() -> RequestAuthenticator:
    global _authenticator
    if _authenticator is None:
        _authenticator = RequestAuthenticator()
    return _authenticator


def _get_router() -> CommandRouter:
    global _router
    if _router is None:
        _router = CommandRouter(
            orchestrator=StateTransitionOrchestrator(),
            ledger=InteractionLedger(),
            server_info=ServerInfo(),
        )
    return _router


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------


def lambda_handler(event: Dict[str, Any], _context: Any) -> Dict[str, Any]:
    logger.info("[INFO] received interaction request")

    try:
        request = SignedRequest.from_event(event)
        _get_authenticator().verify(request)
    except (AuthError, ValueError) as exc:
        logger.warning("unauthorized request: %s", exc)
        return _unauthorized()

    try:
        payload = json.loads(request.body)
    except json.JSONDecodeError as exc:
        logger.warning("Interaction body is not JSON: %s", exc)
        return _response(200, error_reply("Could not read this command."))

    return _response(200, _get_router().handle(payload))
