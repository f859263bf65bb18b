"""
事件 WebSocket 推送模块 (Event WebSocket Push Module)

WebSocket端点：/api/v1/ws/events

订阅 EventBroadcaster，把周期任务产生的命名事件原样转发给客户端。
消息格式：{"event": "metrics" | "resources" | "costs" | "alerts" | "scaling", "data": ..., "timestamp": ...}

客户端消费过慢时，其队列满后的消息会被丢弃（至多一次投递）。
"""
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/api/v1/ws/events")
async def events_ws(websocket: WebSocket):
    """
    事件推送端点 (Event Push Endpoint)

    Connection Flow:
        1. 接受连接并订阅广播器
        2. 循环从订阅队列取出消息并发送
        3. 连接断开时取消订阅
    """
    broadcaster = websocket.app.state.runtime.broadcaster
    await websocket.accept()
    queue = broadcaster.subscribe()
    logger.info("Event WebSocket client connected (%d subscribers)", broadcaster.subscriber_count)

    try:
        while True:
            message = await queue.get()
            await websocket.send_text(message)
    except (WebSocketDisconnect, RuntimeError):
        pass
    except Exception as e:
        logger.error(f"Event WebSocket error: {e}")
    finally:
        broadcaster.unsubscribe(queue)
        logger.info("Event WebSocket client disconnected")
