"""factorio_shared.models — Commands, desired states, outcomes and ledger records."""

from __future__ import annotations

import datetime as dt
import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StartCommand:
    mount_dir: str
    interaction_token: str


@dataclass(frozen=True)
class StopCommand:
    pass


@dataclass(frozen=True)
class StatusCommand:
    pass


Command = Union[StartCommand, StopCommand, StatusCommand]

# ---------------------------------------------------------------------------
# Desired state / outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Running:
    mount_dir: str

    template_value = "Running"

    @property
    def mounting_dir(self) -> str:
        return f"/{self.mount_dir}/"


@dataclass(frozen=True)
class Stopped:
    template_value = "Stopped"


DesiredState = Union[Running, Stopped]


class UpdateOutcome(enum.Enum):
    APPLIED = "applied"
    ALREADY_IN_DESIRED_STATE = "already_in_desired_state"
    CONFLICTING_UPDATE_IN_PROGRESS = "conflicting_update_in_progress"


@dataclass(frozen=True)
class StackSnapshot:
    status: str
    server_state: Optional[str]


# ---------------------------------------------------------------------------
# Pending interactions
# ---------------------------------------------------------------------------


class InteractionKind(enum.Enum):
    # Values are the stored `command` key attribute.
    START = "FactorioStart"
    STOP = "FactorioStop"


@dataclass(frozen=True)
class PendingInteraction:
    """Correlates an asynchronous command with the requester's reply token.

    Identity is ``(kind, created_at)`` at whole-second resolution.
    """

    kind: InteractionKind
    reply_token: str
    created_at: dt.datetime
    request_token: Optional[str] = None

    @property
    def timestamp(self) -> int:
        return int(self.created_at.timestamp())

    def expires_at(self, ttl_seconds: int) -> int:
        return self.timestamp + ttl_seconds

    def key(self) -> Dict[str, Any]:
        return {"command": self.kind.value, "timestamp": self.timestamp}

    def to_record(self, ttl_seconds: int) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            **self.key(),
            "token": self.reply_token,
            "ttl": self.expires_at(ttl_seconds),
        }
        if self.request_token:
            record["request_token"] = self.request_token
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "PendingInteraction":
        try:
            kind = InteractionKind(record["command"])
            timestamp = int(record["timestamp"])
            token = str(record["token"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed interaction record: {exc}") from exc
        return cls(
            kind=kind,
            reply_token=token,
            created_at=dt.datetime.fromtimestamp(timestamp, tz=dt.timezone.utc),
            request_token=record.get("request_token") or None,
        )


# ---------------------------------------------------------------------------
# Completion signal
# ---------------------------------------------------------------------------

UPDATE_COMPLETE = "UPDATE_COMPLETE"


@dataclass(frozen=True)
class CompletionSignal:
    status: str
    stack_id: Optional[str] = None
    client_request_token: Optional[str] = None

    @property
    def is_update_complete(self) -> bool:
        return self.status == UPDATE_COMPLETE

    @classmethod
    def from_event(cls, event: Dict[str, Any]) -> "CompletionSignal":
        """Build from an EventBridge CloudFormation stack status change event."""
        detail = event.get("detail") or {}
        if not isinstance(detail, dict):
            detail = {}
        status_details = detail.get("status-details") or {}
        if not isinstance(status_details, dict):
            status_details = {}
        return cls(
            status=str(status_details.get("status") or ""),
            stack_id=detail.get("stack-id") or None,
            client_request_token=detail.get("client-request-token") or None,
        )
