from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import secrets
import time
from typing import Any

from fairpoker_backend.engine.models import RECORD_KIND_CODES, RecordKind, SignedReceipt
from fairpoker_backend.publish.base import RecordPublisher


class InMemoryRecordPublisher(RecordPublisher):
    """Keeps signed records in memory and fans them out to local subscribers."""

    def __init__(self, secret_key: bytes | None = None) -> None:
        self._secret_key = secret_key or secrets.token_bytes(32)
        self._pubkey = hashlib.sha256(self._secret_key).hexdigest()
        self.records: list[SignedReceipt] = []
        self._subscriptions: set[asyncio.Queue[SignedReceipt]] = set()

    @property
    def pubkey(self) -> str:
        return self._pubkey

    async def publish(
        self,
        kind: RecordKind,
        content: dict[str, Any],
        tags: list[list[str]],
    ) -> SignedReceipt:
        kind_code = RECORD_KIND_CODES[kind]
        created_at = int(time.time())
        body = json.dumps(content, separators=(",", ":"))
        serialized = json.dumps(
            [0, self._pubkey, created_at, kind_code, tags, body],
            separators=(",", ":"),
            ensure_ascii=False,
        )
        event_id = hashlib.sha256(serialized.encode("utf-8")).hexdigest()
        receipt = SignedReceipt(
            event_id=event_id,
            kind=kind_code,
            pubkey=self._pubkey,
            created_at=created_at,
            tags=tags,
            content=body,
            sig=self.sign(event_id),
        )
        self.records.append(receipt)
        for queue in list(self._subscriptions):
            try:
                queue.put_nowait(receipt)
            except asyncio.QueueFull:
                continue
        return receipt

    def sign(self, event_id: str) -> str:
        return hmac.new(self._secret_key, event_id.encode("utf-8"), hashlib.sha256).hexdigest()

    def verify(self, receipt: SignedReceipt) -> bool:
        return hmac.compare_digest(self.sign(receipt.event_id), receipt.sig)

    def subscribe(self) -> asyncio.Queue[SignedReceipt]:
        queue: asyncio.Queue[SignedReceipt] = asyncio.Queue(maxsize=256)
        self._subscriptions.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[SignedReceipt]) -> None:
        self._subscriptions.discard(queue)
