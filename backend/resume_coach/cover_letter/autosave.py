import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)

AUTOSAVE_DELAY_SECONDS = 30.0


class AutosaveTimer:
    """
    Debounced save. Each touch() restarts the countdown; the save runs only
    when no further touch arrives before the delay elapses.
    """

    def __init__(
        self,
        save: Callable[[], Awaitable[object]],
        should_save: Callable[[], bool],
        delay: float = AUTOSAVE_DELAY_SECONDS,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.save = save
        self.should_save = should_save
        self.delay = delay
        self.on_error = on_error
        self._task: Optional[asyncio.Task] = None
        self._saves: Set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def saving(self) -> bool:
        return bool(self._saves)

    def touch(self) -> None:
        """Restart the countdown. Must be called from a running event loop."""
        self.cancel()
        if not self.should_save():
            return
        self._task = asyncio.get_running_loop().create_task(self._countdown())

    def cancel(self) -> None:
        """Stop a countdown that has not fired yet. A save already under way runs to completion."""
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    async def aclose(self) -> None:
        task = self._task
        self.cancel()
        if task:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._saves:
            await asyncio.gather(*self._saves)

    async def _countdown(self) -> None:
        await asyncio.sleep(self.delay)
        # Runs outside the countdown task so a later touch() cannot abort it mid-request.
        save = asyncio.get_running_loop().create_task(self._run_save())
        self._saves.add(save)
        save.add_done_callback(self._saves.discard)

    async def _run_save(self) -> None:
        logger.info("Autosaving cover letter...")
        try:
            await self.save()
        except Exception as e:
            logger.error(f"Autosave failed: {e}", exc_info=True)
            if self.on_error:
                self.on_error(e)
