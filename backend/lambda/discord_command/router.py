"""router.py — Slash-command parsing and dispatch for the Discord command Lambda.

Part of the discord_command function package.
"""
from __future__ import annotations

import datetime as dt
import logging
import uuid
from typing import Any, Callable, Dict

from factorio_shared.compute import ServerInfo
from factorio_shared.control_plane import StateTransitionOrchestrator
from factorio_shared.discord_api import PONG, error_reply, interaction_reply, start_reply, stop_reply
from factorio_shared.errors import (
    InfraError,
    MalformedPayloadError,
    MissingArgumentError,
    RoutingError,
    StoreError,
    UnknownCommandError,
)
from factorio_shared.ledger import InteractionLedger
from factorio_shared.models import (
    Command,
    InteractionKind,
    PendingInteraction,
    Running,
    StartCommand,
    StatusCommand,
    StopCommand,
    Stopped,
    UpdateOutcome,
)
from factorio_shared.serialization import _utc_now

__all__ = ["CommandRouter"]

logger = logging.getLogger(__name__)

PING = 1

# Subcommand name -> command. "ip" is the name the first deployment used for status.
_COMMANDS = {
    "start": StartCommand,
    "stop": StopCommand,
    "status": StatusCommand,
    "ip": StatusCommand,
}

_FAILURE_TEXT = {
    StartCommand: "Failed to start the server. Please try again later.",
    StopCommand: "Failed to stop the server. Please try again later.",
    StatusCommand: "Failed to look up the server status. Please try again later.",
}


def _new_request_token(prefix: str) -> str:
    # CloudFormation ClientRequestToken: [a-zA-Z][-a-zA-Z0-9]*
    return f"{prefix}-{uuid.uuid4().hex}"


def _routing_error_text(exc: RoutingError) -> str:
    if isinstance(exc, UnknownCommandError):
        if exc.name:
            return f"Unknown command `{exc.name}`."
        return "No command was provided."
    if isinstance(exc, MissingArgumentError):
        return f"Missing required argument: {exc.argument}."
    return "Could not read this command."


class CommandRouter:
    def __init__(
        self,
        orchestrator: StateTransitionOrchestrator,
        ledger: InteractionLedger,
        server_info: ServerInfo,
        *,
        clock: Callable[[], dt.datetime] = _utc_now,
        token_factory: Callable[[str], str] = _new_request_token,
    ) -> None:
        self.orchestrator = orchestrator
        self.ledger = ledger
        self.server_info = server_info
        self._clock = clock
        self._token_factory = token_factory

    def parse(self, payload: Dict[str, Any]) -> Command:
        """Turn an APPLICATION_COMMAND payload into a Command."""
        data = payload.get("data")
        options = data.get("options") if isinstance(data, dict) else None
        if not isinstance(options, list) or not options or not isinstance(options[0], dict):
            raise UnknownCommandError(None)

        name = options[0].get("name")
        command_type = _COMMANDS.get(name) if isinstance(name, str) else None
        if command_type is None:
            raise UnknownCommandError(name)
        if command_type is not StartCommand:
            return command_type()

        args = options[0].get("options")
        value = None
        if isinstance(args, list) and args and isinstance(args[0], dict):
            value = args[0].get("value")
        mount_dir = value.strip().strip("/") if isinstance(value, str) else ""
        if not mount_dir:
            raise MissingArgumentError("save")

        token = payload.get("token")
        if not isinstance(token, str) or not token:
            raise MissingArgumentError("interaction token")
        return StartCommand(mount_dir=mount_dir, interaction_token=token)

    def handle(self, payload: Any) -> Dict[str, Any]:
        """Return the interaction response body for ``payload``."""
        if isinstance(payload, dict) and type(payload.get("type")) is int and payload["type"] == PING:
            logger.info("ping event")
            return dict(PONG)

        try:
            if not isinstance(payload, dict):
                raise MalformedPayloadError("Interaction payload must be a JSON object")
            msg_type = payload.get("type")
            if not isinstance(msg_type, int) or isinstance(msg_type, bool):
                raise MalformedPayloadError("Interaction payload has no integer type")
            command = self.parse(payload)
        except RoutingError as exc:
            logger.warning("Rejected command: %s", exc)
            return error_reply(_routing_error_text(exc))

        logger.info("Dispatching command %s", type(command).__name__)
        try:
            if isinstance(command, StartCommand):
                return self._start(command)
            if isinstance(command, StopCommand):
                outcome = self.orchestrator.transition(Stopped(), request_token=self._token_factory("stop"))
                return stop_reply(outcome)
            return self._status()
        except InfraError:
            logger.exception("Command %s failed", type(command).__name__)
            return error_reply(_FAILURE_TEXT[type(command)])

    def _status(self) -> Dict[str, Any]:
        content = self.server_info.status_content()
        snapshot = self.orchestrator.current_state()
        if snapshot.status.endswith("_IN_PROGRESS"):
            target = f" to {snapshot.server_state}" if snapshot.server_state else ""
            content = f"{content}\nServer is currently being updated{target} ({snapshot.status})."
        return interaction_reply(content)

    def _start(self, command: StartCommand) -> Dict[str, Any]:
        request_token = self._token_factory("start")
        outcome = self.orchestrator.transition(Running(command.mount_dir), request_token=request_token)
        if outcome is not UpdateOutcome.APPLIED:
            return start_reply(outcome, command.mount_dir)

        interaction = PendingInteraction(
            kind=InteractionKind.START,
            reply_token=command.interaction_token,
            created_at=self._clock(),
            request_token=request_token,
        )
        # The stack update stands even if this write fails; only the follow-up is lost.
        notify_unavailable = False
        try:
            self.ledger.save(interaction)
        except StoreError as exc:
            logger.error("Failed to record start interaction: %s", exc)
            notify_unavailable = True

        return start_reply(
            outcome,
            command.mount_dir,
            request_token=request_token,
            notify_unavailable=notify_unavailable,
        )
