import asyncio
import json
from typing import AsyncIterator, Dict, Optional, Tuple

class EventBroadcaster:
    """Fan-out of sync notifications to connected SSE clients (the UI turns them into toasts).

    Publishers run in the threadpool that serves sync routes, so each payload is
    handed to the subscriber's own loop. A message with a user_id only reaches
    that user's subscriptions; user_id=None goes to everyone.
    """

    def __init__(self):
        self._queues: Dict[asyncio.Queue, Tuple[asyncio.AbstractEventLoop, Optional[int]]] = {}

    async def subscribe(self, user_id: Optional[int] = None) -> AsyncIterator[str]:  # pragma: no cover (async generator)
        q: asyncio.Queue = asyncio.Queue(maxsize=100)
        self._queues[q] = (asyncio.get_running_loop(), user_id)
        try:
            while True:
                msg = await q.get()
                yield msg
        finally:
            self._queues.pop(q, None)

    @staticmethod
    def _offer(q: asyncio.Queue, payload: str):
        if not q.full():
            q.put_nowait(payload)

    def publish(self, event: str, data: dict, user_id: Optional[int] = None):
        payload = f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"
        for q, (loop, owner) in list(self._queues.items()):
            if user_id is not None and owner != user_id:
                continue
            if loop.is_closed():
                self._queues.pop(q, None)
                continue
            loop.call_soon_threadsafe(self._offer, q, payload)

    @property
    def subscribers(self) -> int:
        return len(self._queues)

broadcaster = EventBroadcaster()
