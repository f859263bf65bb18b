"""
事件广播器 (Event Broadcaster)

基于内存队列的发布-订阅，用于向多个 WebSocket 客户端推送命名事件
（metrics / resources / costs / alerts / scaling）。

投递语义为至多一次：publish 不等待订阅者，订阅者队列已满时直接丢弃该消息。
"""
import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, List

from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)

EVENT_TYPES = ("metrics", "resources", "costs", "alerts", "scaling")


class EventBroadcaster:
    """
    每个订阅者一个有界 asyncio.Queue，消息为已序列化的 JSON 文本。
    """

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: List[asyncio.Queue] = []
        self.dropped = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    @staticmethod
    def encode(event: str, payload: Any) -> str:
        return json.dumps(
            {
                "event": event,
                "data": jsonable_encoder(payload),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            ensure_ascii=False,
        )

    async def publish(self, event: str, payload: Any) -> int:
        """向所有订阅者投递一条事件，返回成功入队的订阅者数量。"""
        message = self.encode(event, payload)
        delivered = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                self.dropped += 1
                logger.debug("Subscriber queue full, dropped %s event", event)
        return delivered
