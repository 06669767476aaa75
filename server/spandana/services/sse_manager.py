"""
SSE (Server-Sent Events) Connection Manager for the admin live activity feed.
"""
import asyncio
import logging
from typing import Dict, List

import anyio

logger = logging.getLogger(__name__)

# Channel that receives every exam's events
ALL_EXAMS = "all"


class SSEConnectionManager:
    """Manages SSE connections for real-time exam activity."""

    def __init__(self):
        # Map channel -> list of queues
        self.active_connections: Dict[str, List[asyncio.Queue]] = {}

    async def connect(self, channel: str) -> asyncio.Queue:
        """Create a new connection for a channel (an exam id or ALL_EXAMS)."""
        if channel not in self.active_connections:
            self.active_connections[channel] = []
        queue: asyncio.Queue = asyncio.Queue()
        self.active_connections[channel].append(queue)
        return queue

    def disconnect(self, channel: str, queue: asyncio.Queue) -> None:
        """Remove a connection from a channel."""
        if channel in self.active_connections:
            if queue in self.active_connections[channel]:
                self.active_connections[channel].remove(queue)
            if not self.active_connections[channel]:
                del self.active_connections[channel]

    async def broadcast(self, exam_id, message: dict) -> None:
        """Broadcast a message to the exam's subscribers and to the all-exams feed."""
        for channel in (str(exam_id), ALL_EXAMS):
            for queue in self.active_connections.get(channel, []):
                await queue.put(message)
        logger.debug("📡 %s for exam %s", message.get("type"), exam_id)

    def publish(self, exam_id, message: dict) -> None:
        """Broadcast from a sync route running in the worker threadpool."""
        anyio.from_thread.run(self.broadcast, exam_id, message)


# Global manager instance
sse_manager = SSEConnectionManager()
