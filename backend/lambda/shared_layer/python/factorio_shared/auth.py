"""factorio_shared.auth — Discord interaction signature verification.

Discord signs every interaction request with the application's Ed25519 key.
The signed message is the ``X-Signature-Timestamp`` header value immediately
followed by the raw request body.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from factorio_shared.config import DISCORD_PUBLIC_KEY
from factorio_shared.errors import MalformedSignatureError, MissingHeaderError, VerificationFailedError


SIGNATURE_HEADER = "X-Signature-Ed25519"
TIMESTAMP_HEADER = "X-Signature-Timestamp"
SIGNATURE_LENGTH = 64
PUBLIC_KEY_LENGTH = 32


@dataclass(frozen=True)
class SignedRequest:
    body: str
    headers: Mapping[str, str] = field(default_factory=dict)

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup (API Gateway v2 lowercases names)."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if str(key).lower() == wanted:
                return value
        return None

    @classmethod
    def from_event(cls, event: Dict[str, Any]) -> "SignedRequest":
        raw = event.get("body") or ""
        if event.get("isBase64Encoded"):
            raw = base64.b64decode(raw).decode("utf-8")
        return cls(body=raw, headers=event.get("headers") or {})


class RequestAuthenticator:
    def __init__(self, public_key_hex: str = DISCORD_PUBLIC_KEY) -> None:
        key_bytes = bytes.fromhex(public_key_hex)
        if len(key_bytes) != PUBLIC_KEY_LENGTH:
            raise ValueError(f"Ed25519 public key must be {PUBLIC_KEY_LENGTH} bytes")
        self._public_key = Ed25519PublicKey.from_public_bytes(key_bytes)

    def verify(self, request: SignedRequest) -> None:
        """Raise an AuthError subclass unless the request carries a valid signature."""
        signature_hex = request.header(SIGNATURE_HEADER)
        if not signature_hex:
            raise MissingHeaderError(SIGNATURE_HEADER)
        timestamp = request.header(TIMESTAMP_HEADER)
        if not timestamp:
            raise MissingHeaderError(TIMESTAMP_HEADER)

        try:
            signature = bytes.fromhex(signature_hex)
        except ValueError as exc:
            raise MalformedSignatureError(f"Signature is not valid hex: {exc}") from exc
        if len(signature) != SIGNATURE_LENGTH:
            raise MalformedSignatureError(
                f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(signature)}"
            )

        message = timestamp.encode("utf-8") + request.body.encode("utf-8")
        try:
            self._public_key.verify(signature, message)
        except InvalidSignature as exc:
            raise VerificationFailedError("Request signature did not verify") from exc
