"""
Transcript sink - accumulates streamed assistant text and persists it once
"""

from typing import Awaitable, Callable, List

from loguru import logger


class TranscriptSink:
    """
    Collects every chunk sent to the client for one turn.

    finalize() writes the full text exactly once, whether the turn completed,
    failed, or was interrupted by the client. Write failures are logged and
    never re-raised, since the client stream may already be closed.
    """

    def __init__(self, persist: Callable[[str], Awaitable[None]], thread_id: str):
        self._persist = persist
        self.thread_id = thread_id
        self._parts: List[str] = []
        self._finalized = False

    def append(self, chunk: str):
        if self._finalized:
            raise RuntimeError(f"Transcript for {self.thread_id} is already finalized")
        self._parts.append(chunk)

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def finalized(self) -> bool:
        return self._finalized

    async def finalize(self) -> bool:
        """Persist the accumulated text. Returns True when the write succeeded."""
        if self._finalized:
            logger.warning(f"Transcript for {self.thread_id} finalized twice, ignoring")
            return False
        self._finalized = True

        text = self.text
        try:
            await self._persist(text)
        except Exception as e:
            logger.error(f"❌ Failed to persist assistant message for {self.thread_id}: {e}")
            return False

        logger.info(f"💾 Saved assistant message for {self.thread_id} ({len(text)} chars)")
        return True
