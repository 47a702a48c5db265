"""factorio_shared.ledger — Pending-interaction records in DynamoDB.

Table layout (``discord-interaction-tokens`` by default):

    command    (S, hash key)   InteractionKind value, e.g. "FactorioStart"
    timestamp  (N, range key)  created_at as unix seconds
    token      (S)             Discord interaction token used for the follow-up
    ttl        (N)             DynamoDB TTL attribute, timestamp + 15 minutes
    request_token (S, opt)     CloudFormation ClientRequestToken of the update

DynamoDB TTL reclaims rows lazily, so every read also filters on the expiry.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Callable, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from factorio_shared.aws_clients import _get_ddb
from factorio_shared.config import INTERACTION_TABLE, INTERACTION_TTL_SECONDS
from factorio_shared.errors import StoreError
from factorio_shared.models import InteractionKind, PendingInteraction
from factorio_shared.serialization import _deserialize, _serialize, _utc_now

logger = logging.getLogger(__name__)


class InteractionLedger:
    def __init__(
        self,
        client: Any = None,
        *,
        table_name: str = INTERACTION_TABLE,
        ttl_seconds: int = INTERACTION_TTL_SECONDS,
        clock: Callable[[], dt.datetime] = _utc_now,
    ) -> None:
        self._client = client
        self.table_name = table_name
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @property
    def client(self):
        if self._client is None:
            self._client = _get_ddb()
        return self._client

    def save(self, interaction: PendingInteraction) -> None:
        """Upsert the record keyed by (kind, created_at)."""
        record = interaction.to_record(self.ttl_seconds)
        item = {k: _serialize(v) for k, v in record.items()}
        logger.info(
            "Saving interaction kind=%s timestamp=%s ttl=%s",
            interaction.kind.value,
            record["timestamp"],
            record["ttl"],
        )
        try:
            self.client.put_item(TableName=self.table_name, Item=item)
        except (BotoCoreError, ClientError) as exc:
            raise StoreError(f"Failed saving interaction: {exc}") from exc

    def delete(self, interaction: PendingInteraction) -> None:
        """Remove the exact keyed record. Absent keys are not an error."""
        key = {k: _serialize(v) for k, v in interaction.key().items()}
        try:
            self.client.delete_item(TableName=self.table_name, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StoreError(f"Failed deleting interaction: {exc}") from exc

    def get_latest(self, kind: InteractionKind) -> Optional[PendingInteraction]:
        """Return the unexpired record of ``kind`` with the greatest created_at."""
        now = self._unix_now()
        items = self._query(kind, now, limit=1)
        for interaction in items:
            if self._is_live(interaction, now):
                return interaction
        return None

    def list_pending(self, kind: InteractionKind) -> List[PendingInteraction]:
        """Return every unexpired record of ``kind``, newest first."""
        now = self._unix_now()
        return [i for i in self._query(kind, now) if self._is_live(i, now)]

    # -----------------------------------------------------------------------

    def _unix_now(self) -> int:
        return int(self._clock().timestamp())

    def _is_live(self, interaction: PendingInteraction, now: int) -> bool:
        return interaction.expires_at(self.ttl_seconds) > now

    def _query(self, kind: InteractionKind, now: int, limit: Optional[int] = None) -> List[PendingInteraction]:
        # Range-key condition drops expired rows before Limit is applied.
        kwargs: Dict[str, Any] = {
            "TableName": self.table_name,
            "KeyConditionExpression": "#cmd = :command AND #ts > :cutoff",
            "ExpressionAttributeNames": {"#cmd": "command", "#ts": "timestamp"},
            "ExpressionAttributeValues": {
                ":command": _serialize(kind.value),
                ":cutoff": _serialize(now - self.ttl_seconds),
            },
            "ScanIndexForward": False,
            "ConsistentRead": True,
        }
        if limit is not None:
            kwargs["Limit"] = limit

        out: List[PendingInteraction] = []
        while True:
            try:
                resp = self.client.query(**kwargs)
            except (BotoCoreError, ClientError) as exc:
                raise StoreError(f"Failed querying interactions: {exc}") from exc

            for raw in resp.get("Items") or []:
                record = _deserialize(raw)
                # Rows written under a shorter TTL setting expire on their own ttl.
                ttl = record.get("ttl")
                if isinstance(ttl, int) and ttl <= now:
                    continue
                try:
                    out.append(PendingInteraction.from_record(record))
                except ValueError as exc:
                    logger.warning("Skipping unreadable interaction record: %s", exc)

            last_key = resp.get("LastEvaluatedKey")
            if not last_key or (limit is not None and len(out) >= limit):
                return out
            kwargs["ExclusiveStartKey"] = last_key
