"""factorio_shared.discord_api — Discord interaction replies and follow-up delivery.

Interaction replies use response type 4 (CHANNEL_MESSAGE_WITH_SOURCE). The
follow-up edits that original reply through the application webhook, which
accepts the interaction token for 15 minutes.
"""

from __future__ import annotations

import json
import logging
import ssl
import urllib.error
import urllib.request
from typing import Any, Dict, List, Optional

import certifi

from factorio_shared.config import DISCORD_API_BASE, DISCORD_APPLICATION_ID, DISCORD_HTTP_TIMEOUT_SECONDS
from factorio_shared.errors import FollowupDeliveryError
from factorio_shared.models import UpdateOutcome

logger = logging.getLogger(__name__)

PONG = {"type": 1}
CHANNEL_MESSAGE_WITH_SOURCE = 4

START_COLOR = 0x00FFFF
STOP_COLOR = 0x930707
THUMBNAIL_URL = "https://factorio.com/static/img/factorio-wheel.png"

_OUTCOME_TITLES = {
    UpdateOutcome.ALREADY_IN_DESIRED_STATE: "Server is already in the desired state.",
    UpdateOutcome.CONFLICTING_UPDATE_IN_PROGRESS: "Server is currently being updated",
}

# ---------------------------------------------------------------------------
# Reply payloads
# ---------------------------------------------------------------------------


def interaction_reply(content: str = "", embeds: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return {
        "type": CHANNEL_MESSAGE_WITH_SOURCE,
        "data": {
            "tts": False,
            "content": content,
            "embeds": embeds or [],
            "allowed_mentions": {"parse": []},
        },
    }


def _embed(title: str, color: int, description: Optional[str] = None, footer: Optional[str] = None) -> Dict[str, Any]:
    embed: Dict[str, Any] = {
        "type": "rich",
        "title": title,
        "color": color,
        "thumbnail": {"url": THUMBNAIL_URL, "height": 0, "width": 0},
    }
    if description:
        embed["description"] = description
    if footer:
        embed["footer"] = {"text": footer}
    return embed


def start_reply(
    outcome: UpdateOutcome,
    mount_dir: str,
    *,
    request_token: Optional[str] = None,
    notify_unavailable: bool = False,
) -> Dict[str, Any]:
    if outcome is not UpdateOutcome.APPLIED:
        title = _OUTCOME_TITLES[outcome]
        return interaction_reply(title, [_embed(title, START_COLOR)])

    title = "Starting the server!"
    if notify_unavailable:
        description = (
            f"Using the `{mount_dir}` save. I could not record this request, "
            "so this message will not update when the server is ready."
        )
    else:
        description = f"Using the `{mount_dir}` save. This message will update when the server is ready to join."
    footer = f"Request {request_token}" if request_token else None
    return interaction_reply(title, [_embed(title, START_COLOR, description, footer)])


def stop_reply(outcome: UpdateOutcome) -> Dict[str, Any]:
    title = "Stopping the server!" if outcome is UpdateOutcome.APPLIED else _OUTCOME_TITLES[outcome]
    return interaction_reply(title, [_embed(title, STOP_COLOR)])


def error_reply(message: str) -> Dict[str, Any]:
    return interaction_reply(message)


def format_elapsed(seconds: float) -> str:
    total = max(0, int(seconds))
    minutes, secs = divmod(total, 60)
    return f"{minutes}m {secs}s"


def ready_followup(elapsed_seconds: float, server_ip: Optional[str]) -> Dict[str, Any]:
    elapsed = format_elapsed(elapsed_seconds)
    if server_ip:
        content = (
            f"Server has now been started and factorio is running at IP: `{server_ip}`. "
            f"Start up took: {elapsed}"
        )
    else:
        content = (
            "Server has now been started, but its address is not available yet. "
            f"Start up took: {elapsed}"
        )
    return {"content": content, "embeds": [], "allowed_mentions": {"parse": []}}


# ---------------------------------------------------------------------------
# Webhook client
# ---------------------------------------------------------------------------


class DiscordWebhookClient:
    def __init__(
        self,
        application_id: str = DISCORD_APPLICATION_ID,
        *,
        api_base: str = DISCORD_API_BASE,
        timeout_seconds: float = DISCORD_HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self.application_id = application_id
        self.api_base = api_base.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._ssl_context = ssl.create_default_context(cafile=certifi.where())

    def original_message_url(self, interaction_token: str) -> str:
        return f"{self.api_base}/webhooks/{self.application_id}/{interaction_token}/messages/@original"

    def edit_original(self, interaction_token: str, payload: Dict[str, Any]) -> int:
        """PATCH the original interaction response. Raises FollowupDeliveryError."""
        url = self.original_message_url(interaction_token)
        req = urllib.request.Request(
            url,
            method="PATCH",
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "User-Agent": "DiscordBot (factorio-server-control, 1.0)",
            },
        )
        logger.info("Sending follow-up to application webhook %s", self.application_id)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds, context=self._ssl_context) as resp:
                return int(getattr(resp, "status", 0) or 0)
        except urllib.error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")[:500]
            raise FollowupDeliveryError(
                f"Discord rejected follow-up with HTTP {exc.code}: {detail}",
                status_code=exc.code,
            ) from exc
        except urllib.error.URLError as exc:
            raise FollowupDeliveryError(f"Discord follow-up failed: {exc.reason}") from exc
        except OSError as exc:
            raise FollowupDeliveryError(f"Discord follow-up failed: {exc}") from exc
