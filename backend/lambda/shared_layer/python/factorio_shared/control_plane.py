"""factorio_shared.control_plane — Idempotent server state transitions via CloudFormation.

The server's lifecycle is driven by the ``ServerState`` parameter of a single
CloudFormation stack. A transition is one UpdateStack call that changes only
``ServerState`` (and ``MountingDir`` when starting); every other parameter is
sent with ``UsePreviousValue``.

CloudFormation reports "nothing to do" and "busy" as ValidationError
rejections, so those are classified into outcomes by ``_REJECTION_RULES``
rather than surfacing as failures.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from botocore.exceptions import BotoCoreError, ClientError

from factorio_shared.aws_clients import _get_cfn
from factorio_shared.config import (
    MOUNTING_DIR_PARAMETER,
    PRESERVED_PARAMETERS,
    SERVER_STATE_PARAMETER,
    STACK_NAME,
)
from factorio_shared.errors import InfraError, UnclassifiedInfraError
from factorio_shared.models import DesiredState, Running, StackSnapshot, UpdateOutcome
from factorio_shared.serialization import _emit_structured_observability

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Rejection classification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RejectionRule:
    code: str
    match: str  # "equals" | "contains"
    message: str
    outcome: UpdateOutcome

    def matches(self, code: str, message: str) -> bool:
        if code != self.code:
            return False
        if self.match == "equals":
            return message == self.message
        return self.message in message


# Matches CloudFormation's English error text. Bump the revision whenever a
# rule is added or provider wording changes.
_REJECTION_RULES_REVISION = 1
_REJECTION_RULES: Sequence[RejectionRule] = (
    RejectionRule(
        code="ValidationError",
        match="equals",
        message="No updates are to be performed.",
        outcome=UpdateOutcome.ALREADY_IN_DESIRED_STATE,
    ),
    RejectionRule(
        code="ValidationError",
        match="contains",
        message="is in UPDATE_IN_PROGRESS state and can not be updated",
        outcome=UpdateOutcome.CONFLICTING_UPDATE_IN_PROGRESS,
    ),
)


def classify_rejection(code: str, message: str) -> Optional[UpdateOutcome]:
    for rule in _REJECTION_RULES:
        if rule.matches(code, message):
            return rule.outcome
    return None


# ---------------------------------------------------------------------------
# Control plane adapter
# ---------------------------------------------------------------------------


class StackControlPlane:
    """Thin CloudFormation adapter: apply a desired state, describe the stack."""

    def __init__(
        self,
        client: Any = None,
        *,
        stack_name: str = STACK_NAME,
        preserved_parameters: Sequence[str] = PRESERVED_PARAMETERS,
        state_parameter: str = SERVER_STATE_PARAMETER,
        mounting_dir_parameter: str = MOUNTING_DIR_PARAMETER,
    ) -> None:
        self._client = client
        self.stack_name = stack_name
        self.preserved_parameters = tuple(preserved_parameters)
        self.state_parameter = state_parameter
        self.mounting_dir_parameter = mounting_dir_parameter

    @property
    def client(self):
        if self._client is None:
            self._client = _get_cfn()
        return self._client

    def build_parameters(self, desired: DesiredState) -> List[Dict[str, Any]]:
        changed: Dict[str, str] = {self.state_parameter: desired.template_value}
        if isinstance(desired, Running):
            changed[self.mounting_dir_parameter] = desired.mounting_dir

        preserved = list(self.preserved_parameters) or self._discover_parameter_keys()
        if self.mounting_dir_parameter not in changed and self.mounting_dir_parameter not in preserved:
            preserved.append(self.mounting_dir_parameter)

        params: List[Dict[str, Any]] = [
            {"ParameterKey": key, "UsePreviousValue": True}
            for key in preserved
            if key not in changed
        ]
        params.extend({"ParameterKey": key, "ParameterValue": value} for key, value in changed.items())
        return params

    def apply_desired_state(self, desired: DesiredState, client_request_token: Optional[str] = None) -> None:
        """Issue UpdateStack. Provider errors propagate unchanged for classification."""
        kwargs: Dict[str, Any] = {
            "StackName": self.stack_name,
            "UsePreviousTemplate": True,
            "Capabilities": ["CAPABILITY_IAM"],
            "Parameters": self.build_parameters(desired),
        }
        if client_request_token:
            kwargs["ClientRequestToken"] = client_request_token
        self.client.update_stack(**kwargs)

    def describe_current_state(self) -> StackSnapshot:
        stack = self._describe_stack()
        server_state = None
        for param in stack.get("Parameters") or []:
            if param.get("ParameterKey") == self.state_parameter:
                server_state = param.get("ParameterValue")
                break
        return StackSnapshot(status=str(stack.get("StackStatus") or ""), server_state=server_state)

    def _describe_stack(self) -> Dict[str, Any]:
        try:
            resp = self.client.describe_stacks(StackName=self.stack_name)
        except (BotoCoreError, ClientError) as exc:
            raise InfraError(f"Failed describing stack {self.stack_name}: {exc}") from exc
        stacks = resp.get("Stacks") or []
        if not stacks:
            raise InfraError(f"Stack {self.stack_name} not found")
        return stacks[0]

    def _discover_parameter_keys(self) -> List[str]:
        stack = self._describe_stack()
        return [p["ParameterKey"] for p in stack.get("Parameters") or [] if p.get("ParameterKey")]


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class StateTransitionOrchestrator:
    def __init__(self, control_plane: Optional[StackControlPlane] = None) -> None:
        self.control_plane = control_plane or StackControlPlane()

    def transition(self, desired: DesiredState, request_token: Optional[str] = None) -> UpdateOutcome:
        """Request ``desired`` and classify the result.

        Repeating a request is safe: an already-applied state yields
        ALREADY_IN_DESIRED_STATE and an in-flight update yields
        CONFLICTING_UPDATE_IN_PROGRESS. Anything unrecognised raises
        UnclassifiedInfraError.
        """
        logger.info("Requesting server state %s", desired)
        started = time.monotonic()
        try:
            self.control_plane.apply_desired_state(desired, client_request_token=request_token)
            outcome = UpdateOutcome.APPLIED
        except ClientError as exc:
            error = exc.response.get("Error", {})
            code = str(error.get("Code") or "")
            message = str(error.get("Message") or "")
            logger.info("UpdateStack rejected code=%s message=%s", code, message)
            outcome = classify_rejection(code, message)
            if outcome is None:
                self._observe(desired, started, error_code=code or "ClientError")
                raise UnclassifiedInfraError(
                    f"Unhandled UpdateStack error {code}: {message}",
                    code=code,
                    provider_message=message,
                ) from exc
        except BotoCoreError as exc:
            self._observe(desired, started, error_code=type(exc).__name__)
            raise UnclassifiedInfraError(f"UpdateStack call failed: {exc}", code=type(exc).__name__) from exc

        self._observe(desired, started, outcome=outcome)
        return outcome

    def current_state(self) -> StackSnapshot:
        return self.control_plane.describe_current_state()

    @staticmethod
    def _observe(
        desired: DesiredState,
        started: float,
        *,
        outcome: Optional[UpdateOutcome] = None,
        error_code: str = "",
    ) -> None:
        _emit_structured_observability(
            component="state_transition",
            event="transition",
            latency_ms=int((time.monotonic() - started) * 1000),
            error_code=error_code,
            extra={
                "desired_state": desired.template_value,
                "outcome": outcome.value if outcome else "error",
                "rules_revision": _REJECTION_RULES_REVISION,
            },
        )
