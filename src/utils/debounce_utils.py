import asyncio
import traceback
from typing import Any, Awaitable, Callable, Optional

# Utils
from utils.log_utils import LogUtil


class DebouncedTask:
    """
    Cancellable scheduled call owned by an editor session.
    Every schedule() restarts the window; only the last call of a burst runs.
    flush() cancels the timer and runs the pending call right away,
    cancel() drops it.
    """

    def __init__(
        self,
        log_util: LogUtil,
        name: str,
        delay_seconds: float,
        callback: Callable[..., Awaitable[Any]]
    ):
        self.log_util = log_util
        self.name = name
        self.delay_seconds = delay_seconds
        self.callback = callback
        self._task: Optional[asyncio.Task] = None
        self._pending_args: tuple = ()
        self._pending_kwargs: dict = {}
        self._has_pending = False

    @property
    def pending(self) -> bool:
        return self._has_pending

    def schedule(self, *args, **kwargs):
        self._pending_args = args
        self._pending_kwargs = kwargs
        self._has_pending = True
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = asyncio.create_task(self._wait_and_fire())

    def cancel(self):
        self._has_pending = False
        self._pending_args = ()
        self._pending_kwargs = {}
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    async def flush(self) -> Any:
        """
        Run the pending call immediately, if any
        """
        if not self._has_pending:
            return None
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None
        return await self._fire()

    async def _wait_and_fire(self):
        try:
            await asyncio.sleep(self.delay_seconds)
        except asyncio.CancelledError:
            return
        self._task = None
        try:
            await self._fire()
        except Exception as e:
            self.log_util.error(
                service_name="DebouncedTask",
                message=f"Error running debounced '{self.name}': {str(e)}"
            )
            self.log_util.error(
                service_name="DebouncedTask",
                message=f"Traceback: {traceback.format_exc()}"
            )

    async def _fire(self) -> Any:
        args, kwargs = self._pending_args, self._pending_kwargs
        self._has_pending = False
        self._pending_args = ()
        self._pending_kwargs = {}
        return await self.callback(*args, **kwargs)
