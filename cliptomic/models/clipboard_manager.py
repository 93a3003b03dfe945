"""
Clipboard Manager Module

Plain-text access to the system clipboard. The pyperclip calls can block on
some platforms, so every operation runs on a worker thread.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import pyperclip

logger = logging.getLogger(__name__)


class ClipboardError(Exception):
    """Raised when the clipboard cannot be read or written."""
    pass


class ClipboardUnavailableError(ClipboardError):
    """Raised when the clipboard holds no usable text."""
    pass


class ClipboardManager:
    """Async wrapper around pyperclip."""

    def __init__(self, executor: Optional[ThreadPoolExecutor] = None):
        """
        Initialize ClipboardManager.

        Args:
            executor: Executor for blocking clipboard calls (a private
                single-thread pool when omitted)
        """
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="clipboard"
        )
        self._owns_executor = executor is None

    async def read_text(self) -> str:
        """
        Read the current clipboard text.

        Returns:
            Clipboard text (possibly blank; callers decide what blank means)

        Raises:
            ClipboardUnavailableError: No clipboard backend or no text content
            ClipboardError: Any other read failure
        """
        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(self._executor, pyperclip.paste)
        except pyperclip.PyperclipException as e:
            raise ClipboardUnavailableError(f"Clipboard not available: {e}") from e
        except Exception as e:
            raise ClipboardError(f"Unexpected error reading clipboard: {e}") from e

        if text is None or not isinstance(text, str):
            raise ClipboardUnavailableError("No text content in clipboard")

        logger.debug("Clipboard read: %d characters", len(text))
        return text

    async def write_text(self, text: str) -> None:
        """
        Replace the clipboard contents with text.

        Raises:
            ClipboardError: If the write fails
        """
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(self._executor, pyperclip.copy, text)
        except Exception as e:
            raise ClipboardError(f"Failed to set clipboard text: {e}") from e

        logger.debug("Clipboard written: %d characters", len(text))

    async def has_text(self) -> bool:
        """Check whether the clipboard currently holds non-empty text."""
        try:
            return bool(await self.read_text())
        except ClipboardError:
            return False

    def shutdown(self) -> None:
        """Release the worker thread."""
        if self._owns_executor:
            self._executor.shutdown(wait=False)
