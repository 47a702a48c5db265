"""factorio_shared.errors — Exception taxonomy for command handling and correlation."""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class AuthError(Exception):
    """Inbound request could not be authenticated."""


class MissingHeaderError(AuthError):
    def __init__(self, header: str) -> None:
        super().__init__(f"Missing required header: {header}")
        self.header = header


class MalformedSignatureError(AuthError):
    pass


class VerificationFailedError(AuthError):
    pass


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


class RoutingError(ValueError):
    """Command payload could not be turned into a command."""


class MalformedPayloadError(RoutingError):
    pass


class UnknownCommandError(RoutingError):
    def __init__(self, name: object) -> None:
        super().__init__(f"Unknown command: {name!r}")
        self.name = name


class MissingArgumentError(RoutingError):
    def __init__(self, argument: str) -> None:
        super().__init__(f"Missing required argument: {argument}")
        self.argument = argument


# ---------------------------------------------------------------------------
# Infrastructure / store / correlation
# ---------------------------------------------------------------------------


class InfraError(RuntimeError):
    """Control plane call failed or returned unusable data."""


class UnclassifiedInfraError(InfraError):
    """Control plane rejection that matches no known classification rule."""

    def __init__(self, message: str, *, code: str = "", provider_message: str = "") -> None:
        super().__init__(message)
        self.code = code
        self.provider_message = provider_message


class StoreError(RuntimeError):
    """Interaction ledger read or write failed."""


class CorrelationError(RuntimeError):
    """Completion signal matched a pending interaction but follow-up failed."""


class FollowupDeliveryError(CorrelationError):
    def __init__(self, message: str, *, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code
