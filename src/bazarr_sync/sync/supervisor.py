"""Interrupt handling and resume directives for a running traversal."""

import asyncio
import logging
import shlex
import signal
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from ..models import ResumeDirective, SyncSummary

logger = logging.getLogger(__name__)

RESUME_FLAG = "--continue-from"
STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ProgressTracker:
    """Last unit of work seen plus a cooperative cancellation token.

    The traversal reports the id of each movie/episode before touching its
    subtitles and checks `cancelled` at the same boundaries. An in-flight
    request is never interrupted by the token.
    """

    def __init__(self) -> None:
        self.last_seen_id: int | None = None
        self._cancel = asyncio.Event()

    def report(self, external_id: int) -> None:
        self.last_seen_id = external_id

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()


@dataclass
class RunResult:
    """How a supervised traversal ended."""

    summary: SyncSummary | None
    interrupted: bool = False
    resume: ResumeDirective | None = None


def build_resume_command(argv: Sequence[str], last_id: int) -> str:
    """Rebuild the current invocation so it continues from `last_id`."""
    if not argv:
        return f"{RESUME_FLAG} {last_id}"

    args: list[str] = []
    skip_next = False
    for arg in argv[1:]:
        if skip_next:
            skip_next = False
            continue
        if arg == RESUME_FLAG:
            skip_next = True
            continue
        if arg.startswith(f"{RESUME_FLAG}="):
            continue
        args.append(arg)

    return shlex.join([argv[0], *args, RESUME_FLAG, str(last_id)])


class Supervisor:
    """Runs a traversal as a task and turns SIGINT/SIGTERM into a resume directive.

    First signal: stop watching, report where to resume, and let the traversal
    stop at its next unit boundary. Second signal: cancel the traversal task,
    abandoning the request in flight.
    """

    def __init__(
        self,
        progress: ProgressTracker,
        argv: Sequence[str] = (),
        on_interrupt: Callable[[ResumeDirective], None] | None = None,
        signals: Sequence[signal.Signals] = STOP_SIGNALS,
    ):
        self.progress = progress
        self.argv = list(argv)
        self.on_interrupt = on_interrupt
        self.signals = tuple(signals)
        self._interrupted = asyncio.Event()
        self._task: asyncio.Task[SyncSummary] | None = None

    def interrupt(self) -> None:
        """Handle a stop request (called from the signal handler)."""
        if self._interrupted.is_set():
            if self._task is not None and not self._task.done():
                logger.warning("Second interrupt, abandoning the request in flight")
                self._task.cancel()
            return
        logger.info("Interrupt received, stopping after the current movie/episode")
        self._interrupted.set()

    def directive(self) -> ResumeDirective:
        last_id = self.progress.last_seen_id
        if last_id is None:
            return ResumeDirective()
        return ResumeDirective(last_seen_id=last_id, command=build_resume_command(self.argv, last_id))

    def _install_handlers(self, loop: asyncio.AbstractEventLoop) -> list[signal.Signals]:
        installed = []
        for sig in self.signals:
            try:
                loop.add_signal_handler(sig, self.interrupt)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                # Not supported on this platform or outside the main thread
                logger.debug("Cannot handle %s: %s", sig.name, e)
                continue
            installed.append(sig)
        return installed

    async def run(self, work: Awaitable[SyncSummary]) -> RunResult:
        """Supervise `work` until it completes or an interrupt arrives."""
        loop = asyncio.get_running_loop()
        self._task = asyncio.ensure_future(work)
        installed = self._install_handlers(loop)
        waiter = asyncio.create_task(self._interrupted.wait())

        try:
            await asyncio.wait({self._task, waiter}, return_when=asyncio.FIRST_COMPLETED)

            if not self._interrupted.is_set():
                return RunResult(summary=self._task.result())

            self.progress.cancel()
            directive = self.directive()
            if self.on_interrupt is not None:
                self.on_interrupt(directive)

            summary = await self._wind_down()
            return RunResult(summary=summary, interrupted=True, resume=directive)
        finally:
            waiter.cancel()
            for sig in installed:
                loop.remove_signal_handler(sig)

    async def _wind_down(self) -> SyncSummary | None:
        assert self._task is not None
        try:
            return await self._task
        except asyncio.CancelledError:
            # Only swallow the cancellation we caused via a second interrupt
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            return None
        except Exception as e:
            logger.warning("Traversal ended with an error after interrupt: %s", e)
            return None

