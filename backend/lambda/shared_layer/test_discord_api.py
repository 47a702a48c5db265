"""test_discord_api.py — Tests for reply payloads and webhook follow-up delivery."""

from __future__ import annotations

import io
import json
import os
import sys
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "python"))

from factorio_shared import discord_api
from factorio_shared.discord_api import (
    DiscordWebhookClient,
    error_reply,
    format_elapsed,
    ready_followup,
    start_reply,
    stop_reply,
)
from factorio_shared.errors import FollowupDeliveryError
from factorio_shared.models import UpdateOutcome


@pytest.mark.parametrize(
    "seconds,expected",
    [(0, "0m 0s"), (59, "0m 59s"), (125, "2m 5s"), (3600, "60m 0s"), (-3, "0m 0s")],
)
def test_format_elapsed(seconds, expected):
    assert format_elapsed(seconds) == expected


def test_start_reply_applied():
    reply = start_reply(UpdateOutcome.APPLIED, "save1", request_token="start-abc")

    assert reply["type"] == 4
    assert reply["data"]["content"] == "Starting the server!"
    assert reply["data"]["allowed_mentions"] == {"parse": []}
    (embed,) = reply["data"]["embeds"]
    assert "`save1`" in embed["description"]
    assert embed["footer"] == {"text": "Request start-abc"}
    assert embed["color"] == discord_api.START_COLOR


def test_start_reply_notify_unavailable():
    reply = start_reply(UpdateOutcome.APPLIED, "save1", notify_unavailable=True)
    assert "will not update" in reply["data"]["embeds"][0]["description"]


@pytest.mark.parametrize(
    "outcome,text",
    [
        (UpdateOutcome.ALREADY_IN_DESIRED_STATE, "Server is already in the desired state."),
        (UpdateOutcome.CONFLICTING_UPDATE_IN_PROGRESS, "Server is currently being updated"),
    ],
)
def test_non_applied_replies(outcome, text):
    assert start_reply(outcome, "save1")["data"]["content"] == text
    assert stop_reply(outcome)["data"]["content"] == text


def test_stop_reply_applied():
    reply = stop_reply(UpdateOutcome.APPLIED)
    assert reply["data"]["content"] == "Stopping the server!"
    assert reply["data"]["embeds"][0]["color"] == discord_api.STOP_COLOR


def test_error_reply_is_plain_message():
    reply = error_reply("Unknown command `foo`.")
    assert reply["type"] == 4
    assert reply["data"]["content"] == "Unknown command `foo`."
    assert reply["data"]["embeds"] == []


def test_ready_followup_with_ip():
    content = ready_followup(125, "10.0.0.5")["content"]
    assert "`10.0.0.5`" in content
    assert content.endswith("Start up took: 2m 5s")


def test_ready_followup_without_ip():
    content = ready_followup(61, None)["content"]
    assert "not available" in content
    assert "1m 1s" in content


def test_original_message_url():
    client = DiscordWebhookClient("123", api_base="https://discord.com/api/v10/")
    assert client.original_message_url("tok") == "https://discord.com/api/v10/webhooks/123/tok/messages/@original"


def test_edit_original_sends_patch():
    client = DiscordWebhookClient("123", api_base="https://discord.test/api", timeout_seconds=2)
    response = MagicMock()
    response.__enter__.return_value.status = 200

    with patch.object(discord_api.urllib.request, "urlopen", return_value=response) as urlopen:
        status = client.edit_original("tok", {"content": "hi"})

    assert status == 200
    req = urlopen.call_args.args[0]
    assert req.get_method() == "PATCH"
    assert req.full_url == "https://discord.test/api/webhooks/123/tok/messages/@original"
    assert json.loads(req.data) == {"content": "hi"}
    assert req.get_header("Content-type") == "application/json"
    assert urlopen.call_args.kwargs["timeout"] == 2


def test_edit_original_http_error():
    client = DiscordWebhookClient("123")
    error = urllib.error.HTTPError(
        client.original_message_url("tok"), 404, "Not Found", {}, io.BytesIO(b'{"message": "Unknown Webhook"}')
    )

    with patch.object(discord_api.urllib.request, "urlopen", side_effect=error):
        with pytest.raises(FollowupDeliveryError) as exc_info:
            client.edit_original("tok", {"content": "hi"})

    assert exc_info.value.status_code == 404
    assert "Unknown Webhook" in str(exc_info.value)


def test_edit_original_network_error():
    client = DiscordWebhookClient("123")
    with patch.object(discord_api.urllib.request, "urlopen", side_effect=urllib.error.URLError("timed out")):
        with pytest.raises(FollowupDeliveryError):
            client.edit_original("tok", {"content": "hi"})
