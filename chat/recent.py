"""
Client for the recent chats listing (GET /chats)
"""

import asyncio
import time
from typing import List, Optional

import aiohttp

from config import SERVER_CONFIG, RECENT_CHATS_CONFIG
from core.logging_config import get_logger
from .models import RecentChat


class RecentChatsClient:
    """
    Keeps the recent chats list for the recent-sessions view.

    A failed refresh leaves the previous list in place and records last_error so
    the caller can offer a retry.
    """

    def __init__(self,
                 base_url: Optional[str] = None,
                 session: Optional[aiohttp.ClientSession] = None,
                 timeout_seconds: Optional[float] = None):
        self.logger = get_logger(__name__)
        self.base_url = (base_url or SERVER_CONFIG["url"]).rstrip("/")
        self.url = f"{self.base_url}{RECENT_CHATS_CONFIG['path']}"
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds or RECENT_CHATS_CONFIG["timeout_seconds"])
        self._session = session
        self._owns_session = session is None

        self.chats: List[RecentChat] = []
        self.last_error: Optional[str] = None
        self.last_refreshed: Optional[float] = None
        self.loading = False

    async def refresh(self) -> bool:
        """
        Fetch the list again.

        Returns:
            True if the list was replaced, False if the fetch failed
        """
        self.loading = True
        start = time.time()
        try:
            session = self._get_session()
            async with session.get(self.url, timeout=self.timeout) as response:
                response.raise_for_status()
                data = await response.json(content_type=None)

            if not isinstance(data, list):
                raise ValueError(f"Expected a list, got {type(data).__name__}")

            chats = []
            for item in data:
                try:
                    chats.append(RecentChat.from_dict(item))
                except ValueError as e:
                    self.logger.warning(f"Skipping malformed recent chat: {e}")

            self.chats = chats
            self.last_error = None
            self.last_refreshed = time.time()
            self.logger.info(f"Loaded {len(chats)} recent chats", extra={"extra_data": {
                "duration_ms": round((time.time() - start) * 1000, 1)
            }})
            return True

        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.last_error = str(e) or type(e).__name__
            self.logger.error(f"Failed to load chats: {self.last_error}")
            return False
        finally:
            self.loading = False

    def find(self, chat_id: str) -> Optional[RecentChat]:
        for chat in self.chats:
            if chat.chat_id == chat_id:
                return chat
        return None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
