"""test_ledger.py — Tests for factorio_shared.ledger against an in-memory table."""

from __future__ import annotations

import datetime as dt
import os
import sys
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "python"))

from factorio_shared.errors import StoreError
from factorio_shared.ledger import InteractionLedger
from factorio_shared.models import InteractionKind, PendingInteraction

NOW = dt.datetime(2026, 3, 1, 12, 0, 0, tzinfo=dt.timezone.utc)


class _FakeDynamoClient:
    """Just enough of the low-level DynamoDB client for the ledger's calls."""

    def __init__(self):
        self.items = {}

    def put_item(self, TableName, Item):
        self.items[(Item["command"]["S"], int(Item["timestamp"]["N"]))] = dict(Item)

    def delete_item(self, TableName, Key):
        self.items.pop((Key["command"]["S"], int(Key["timestamp"]["N"])), None)

    def query(self, **kwargs):
        values = kwargs["ExpressionAttributeValues"]
        command = values[":command"]["S"]
        cutoff = int(values[":cutoff"]["N"])
        rows = [item for (cmd, ts), item in self.items.items() if cmd == command and ts > cutoff]
        rows.sort(key=lambda item: int(item["timestamp"]["N"]), reverse=kwargs.get("ScanIndexForward") is False)
        if kwargs.get("Limit"):
            rows = rows[: kwargs["Limit"]]
        return {"Items": rows}


def _interaction(kind=InteractionKind.START, seconds_ago=0, token="tok", request_token=None):
    return PendingInteraction(
        kind=kind,
        reply_token=token,
        created_at=NOW - dt.timedelta(seconds=seconds_ago),
        request_token=request_token,
    )


@pytest.fixture
def table():
    return _FakeDynamoClient()


@pytest.fixture
def ledger(table):
    return InteractionLedger(table, table_name="interactions", ttl_seconds=900, clock=lambda: NOW)


def test_save_writes_key_token_and_ttl(ledger, table):
    ledger.save(_interaction(seconds_ago=10, request_token="start-abc"))

    (item,) = table.items.values()
    assert item["command"] == {"S": "FactorioStart"}
    assert int(item["timestamp"]["N"]) == int(NOW.timestamp()) - 10
    assert item["token"] == {"S": "tok"}
    assert int(item["ttl"]["N"]) == int(NOW.timestamp()) - 10 + 900
    assert item["request_token"] == {"S": "start-abc"}


def test_save_is_an_upsert(ledger, table):
    ledger.save(_interaction(token="first"))
    ledger.save(_interaction(token="second"))

    assert len(table.items) == 1
    assert ledger.get_latest(InteractionKind.START).reply_token == "second"


def test_get_latest_returns_newest_start(ledger):
    ledger.save(_interaction(seconds_ago=300, token="old"))
    ledger.save(_interaction(seconds_ago=60, token="new"))

    latest = ledger.get_latest(InteractionKind.START)
    assert latest.reply_token == "new"
    assert latest.created_at == NOW - dt.timedelta(seconds=60)


def test_get_latest_ignores_other_kinds(ledger):
    ledger.save(_interaction(seconds_ago=120, token="start"))
    ledger.save(_interaction(kind=InteractionKind.STOP, seconds_ago=5, token="stop"))

    assert ledger.get_latest(InteractionKind.START).reply_token == "start"


def test_get_latest_ignores_expired_records(ledger):
    ledger.save(_interaction(seconds_ago=16 * 60, token="expired"))

    assert ledger.get_latest(InteractionKind.START) is None


def test_get_latest_honours_stored_ttl(ledger, table):
    ts = int(NOW.timestamp())
    table.items[("FactorioStart", ts - 60)] = {
        "command": {"S": "FactorioStart"},
        "timestamp": {"N": str(ts - 60)},
        "token": {"S": "short-lived"},
        "ttl": {"N": str(ts - 1)},
    }

    assert ledger.get_latest(InteractionKind.START) is None


def test_get_latest_empty(ledger):
    assert ledger.get_latest(InteractionKind.START) is None


def test_save_then_delete_leaves_nothing(ledger, table):
    interaction = _interaction(seconds_ago=30)
    ledger.save(interaction)
    ledger.delete(interaction)

    assert table.items == {}
    assert ledger.get_latest(InteractionKind.START) is None


def test_delete_absent_record_is_not_an_error(ledger):
    ledger.delete(_interaction(seconds_ago=30))


def test_list_pending_newest_first(ledger):
    ledger.save(_interaction(seconds_ago=200, token="a"))
    ledger.save(_interaction(seconds_ago=100, token="b"))
    ledger.save(_interaction(seconds_ago=2000, token="gone"))

    assert [i.reply_token for i in ledger.list_pending(InteractionKind.START)] == ["b", "a"]


def test_query_shape():
    client = MagicMock()
    client.query.return_value = {"Items": []}
    ledger = InteractionLedger(client, table_name="interactions", ttl_seconds=900, clock=lambda: NOW)

    ledger.get_latest(InteractionKind.START)

    kwargs = client.query.call_args.kwargs
    assert kwargs["TableName"] == "interactions"
    assert kwargs["Limit"] == 1
    assert kwargs["ScanIndexForward"] is False
    assert kwargs["ExpressionAttributeNames"] == {"#cmd": "command", "#ts": "timestamp"}
    assert kwargs["ExpressionAttributeValues"][":cutoff"] == {"N": str(int(NOW.timestamp()) - 900)}


def test_list_pending_follows_pagination():
    ts = int(NOW.timestamp())
    page1 = {
        "Items": [{"command": {"S": "FactorioStart"}, "timestamp": {"N": str(ts - 1)}, "token": {"S": "a"}}],
        "LastEvaluatedKey": {"command": {"S": "FactorioStart"}, "timestamp": {"N": str(ts - 1)}},
    }
    page2 = {"Items": [{"command": {"S": "FactorioStart"}, "timestamp": {"N": str(ts - 5)}, "token": {"S": "b"}}]}
    client = MagicMock()
    client.query.side_effect = [page1, page2]
    ledger = InteractionLedger(client, ttl_seconds=900, clock=lambda: NOW)

    assert [i.reply_token for i in ledger.list_pending(InteractionKind.START)] == ["a", "b"]
    assert "ExclusiveStartKey" in client.query.call_args_list[1].kwargs


def test_unreadable_records_are_skipped():
    ts = int(NOW.timestamp())
    client = MagicMock()
    client.query.return_value = {
        "Items": [
            {"command": {"S": "FactorioStart"}, "timestamp": {"N": str(ts - 1)}},
            {"command": {"S": "FactorioStart"}, "timestamp": {"N": str(ts - 2)}, "token": {"S": "ok"}},
        ]
    }
    ledger = InteractionLedger(client, ttl_seconds=900, clock=lambda: NOW)

    assert [i.reply_token for i in ledger.list_pending(InteractionKind.START)] == ["ok"]


@pytest.mark.parametrize("method", ["put_item", "delete_item", "query"])
def test_client_errors_become_store_errors(method):
    client = MagicMock()
    getattr(client, method).side_effect = ClientError(
        {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}}, method
    )
    ledger = InteractionLedger(client, ttl_seconds=900, clock=lambda: NOW)

    with pytest.raises(StoreError):
        if method == "put_item":
            ledger.save(_interaction())
        elif method == "delete_item":
            ledger.delete(_interaction())
        else:
            ledger.get_latest(InteractionKind.START)


def test_record_round_trip_preserves_identity():
    interaction = _interaction(seconds_ago=42, request_token="start-1")
    restored = PendingInteraction.from_record(interaction.to_record(900))
    assert restored == interaction


def test_from_record_rejects_unknown_kind():
    with pytest.raises(ValueError):
        PendingInteraction.from_record({"command": "Other", "timestamp": 1, "token": "t"})
