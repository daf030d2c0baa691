import asyncio
import json
from datetime import datetime, timezone
from typing import Any

from fastapi import WebSocket


class RealtimeHub:
    """Per-masjid websocket fan-out telling screens and consoles to re-poll."""

    def __init__(self) -> None:
        self._clients: dict[str, set[WebSocket]] = {}
        self._lock = asyncio.Lock()
        self._revisions: dict[str, int] = {}

    def revision(self, masjid_id: str) -> int:
        return self._revisions.get(masjid_id, 0)

    async def connect(self, masjid_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._clients.setdefault(masjid_id, set()).add(websocket)
        await websocket.send_text(
            json.dumps(
                {
                    "type": "hello",
                    "masjid_id": masjid_id,
                    "revision": self.revision(masjid_id),
                    "ts": datetime.now(timezone.utc).isoformat(),
                }
            )
        )

    async def disconnect(self, masjid_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            clients = self._clients.get(masjid_id)
            if clients is not None:
                clients.discard(websocket)
                if not clients:
                    del self._clients[masjid_id]

    async def publish(self, masjid_id: str, event_type: str, payload: dict[str, Any] | None = None) -> int:
        revision = self._revisions.get(masjid_id, 0) + 1
        self._revisions[masjid_id] = revision
        message = json.dumps(
            {
                "type": event_type,
                "masjid_id": masjid_id,
                "revision": revision,
                "payload": payload or {},
                "ts": datetime.now(timezone.utc).isoformat(),
            }
        )
        async with self._lock:
            clients = list(self._clients.get(masjid_id, ()))

        stale: list[WebSocket] = []
        for client in clients:
            try:
                await client.send_text(message)
            except Exception:
                stale.append(client)

        for client in stale:
            await self.disconnect(masjid_id, client)
        return revision


hub = RealtimeHub()
