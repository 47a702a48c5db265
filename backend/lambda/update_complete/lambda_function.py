"""update_complete/lambda_function.py

EventBridge-triggered Lambda that tells the requester when the server is up.

Triggered by an EventBridge rule on "CloudFormation Stack Status Change"
events for the Factorio stack.

On UPDATE_COMPLETE:
  - Find the start interaction whose ClientRequestToken matches the event;
    without a token in the event, the most recent unexpired start
  - Edit the original Discord reply with the start-up time and server IP
  - Delete the interaction record once the edit succeeds

Any other status is ignored.

Environment variables:
    STACK_NAME               default: factorio-ecs-spot
    INTERACTION_TABLE        default: discord-interaction-tokens
    DISCORD_APPLICATION_ID   application whose webhook owns the reply
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from factorio_shared.compute import ServerInfo
from factorio_shared.discord_api import DiscordWebhookClient
from factorio_shared.errors import CorrelationError, StoreError
from factorio_shared.ledger import InteractionLedger
from factorio_shared.models import CompletionSignal

from correlator import CompletionCorrelator

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(logging.INFO)

# ---------------------------------------------------------------------------
# Lazy singletons
# ---------------------------------------------------------------------------

_correlator = None


def _get_correlator() -> CompletionCorrelator:
    global _correlator
    if _correlator is None:
        _correlator = CompletionCorrelator(
            ledger=InteractionLedger(),
            server_info=ServerInfo(),
            webhook=DiscordWebhookClient(),
        )
    return _correlator


# ---------------------------------------------------------------------------
# Lambda handler
# ---------------------------------------------------------------------------


def lambda_handler(event: Dict[str, Any], _context: Any) -> Dict[str, Any]:
    """EventBridge Lambda handler for CloudFormation stack status changes."""
    logger.info("update_complete: received event")
    logger.info(json.dumps(event, default=str)[:2000])

    signal = CompletionSignal.from_event(event)
    try:
        result = _get_correlator().on_signal(signal)
    except CorrelationError as exc:
        logger.error("[ERROR] Follow-up delivery failed; interaction kept for retry: %s", exc)
        return {"status": "delivery_failed", "error": str(exc)}
    except StoreError as exc:
        logger.error("[ERROR] Interaction lookup failed: %s", exc)
        return {"status": "store_error", "error": str(exc)}

    logger.info("[END] update_complete: %s", result.status)
    return result.as_dict()
