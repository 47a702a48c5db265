"""correlator.py — Match stack completion signals to pending start interactions.

Part of the update_complete function package.
"""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional

from factorio_shared.compute import ServerInfo
from factorio_shared.config import STACK_NAME
from factorio_shared.discord_api import DiscordWebhookClient, ready_followup
from factorio_shared.errors import InfraError, StoreError
from factorio_shared.ledger import InteractionLedger
from factorio_shared.models import CompletionSignal, InteractionKind, PendingInteraction
from factorio_shared.serialization import _emit_structured_observability, _utc_now

__all__ = ["CompletionCorrelator", "CorrelationResult"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CorrelationResult:
    status: str
    elapsed_seconds: Optional[int] = None
    server_ip: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class CompletionCorrelator:
    def __init__(
        self,
        ledger: InteractionLedger,
        server_info: ServerInfo,
        webhook: DiscordWebhookClient,
        *,
        stack_name: str = STACK_NAME,
        clock: Callable[[], dt.datetime] = _utc_now,
    ) -> None:
        self.ledger = ledger
        self.server_info = server_info
        self.webhook = webhook
        self.stack_name = stack_name
        self._clock = clock

    def on_signal(self, signal: CompletionSignal) -> CorrelationResult:
        """Deliver the ready follow-up for the pending start this signal completes.

        Raises FollowupDeliveryError (record kept) or StoreError from the lookup.
        """
        if not signal.is_update_complete:
            logger.info("[SKIP] Stack status %s is not UPDATE_COMPLETE", signal.status)
            return CorrelationResult(status="ignored")
        if signal.stack_id and not self._is_managed_stack(signal.stack_id):
            logger.info("[SKIP] Not our stack: %s", signal.stack_id)
            return CorrelationResult(status="ignored")

        interaction = self._find_pending(signal)
        if interaction is None:
            logger.info("No token was retrieved for this event.")
            return CorrelationResult(status="no_pending_interaction")

        elapsed = int((self._clock() - interaction.created_at).total_seconds())
        logger.info("Retrieved start interaction created_at=%s elapsed=%ss", interaction.timestamp, elapsed)

        try:
            server_ip = self.server_info.get_running_server_ip()
        except InfraError as exc:
            logger.warning("Server address lookup failed: %s", exc)
            server_ip = None

        self.webhook.edit_original(interaction.reply_token, ready_followup(elapsed, server_ip))
        _emit_structured_observability(
            component="update_complete",
            event="followup_delivered",
            latency_ms=elapsed * 1000,
            extra={"server_ip": server_ip or ""},
        )

        try:
            self.ledger.delete(interaction)
        except StoreError as exc:
            # Record expires on its own; a repeat signal would notify twice until then.
            logger.error("Follow-up delivered but interaction was not deleted: %s", exc)
            return CorrelationResult(status="delivered_not_deleted", elapsed_seconds=elapsed, server_ip=server_ip)

        return CorrelationResult(status="delivered", elapsed_seconds=elapsed, server_ip=server_ip)

    def _is_managed_stack(self, stack_id: str) -> bool:
        return stack_id == self.stack_name or f":stack/{self.stack_name}/" in stack_id

    def _find_pending(self, signal: CompletionSignal) -> Optional[PendingInteraction]:
        if not signal.client_request_token:
            return self.ledger.get_latest(InteractionKind.START)

        for interaction in self.ledger.list_pending(InteractionKind.START):
            if interaction.request_token == signal.client_request_token:
                return interaction
        # A stop, a console update, or a start whose record already expired.
        logger.info("[SKIP] No pending start for request token %s", signal.client_request_token)
        return None
