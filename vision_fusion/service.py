from __future__ import annotations

"""
Classification entrypoint.

VisionService is built once (models load in the constructor) and then
shared by reference; ``classify`` can be awaited concurrently for
different images.  ClassificationSlot sits on top for callers that own a
single "current analysis" (an edit form, a capture screen): submitting a
new image cancels whatever was still running for that slot, and a
cancelled request never delivers a result.
"""

import asyncio
import time
from typing import Any, Callable, List, Optional, Sequence

from loguru import logger

from .config import ClassificationResult, SelectionSettings
from .imaging import ImageSource, load_image
from .recognizers import Recognizer
from .scheduler import CancellationToken, FanOutScheduler
from .selection import select


class VisionService:
    def __init__(
        self,
        recognizers: Sequence[Recognizer],
        scheduler: Optional[FanOutScheduler] = None,
        settings: Optional[SelectionSettings] = None,
        timeout_s: Optional[float] = None,
    ):
        self.recognizers = list(recognizers)
        for r in self.recognizers:
            r.load()
        self.scheduler = scheduler or FanOutScheduler(self.recognizers, timeout_s=timeout_s)
        self.settings = settings or SelectionSettings()

        names = [r.name for r in self.available_recognizers]
        if names:
            logger.info("VisionService ready with recognizers: {}", ", ".join(names))
        else:
            logger.warning("VisionService has no available recognizers; every classify() will fail")

    @property
    def available_recognizers(self) -> List[Recognizer]:
        return [r for r in self.recognizers if r.available]

    async def classify(
        self,
        image: ImageSource,
        orientation: Optional[Any] = None,
        token: Optional[CancellationToken] = None,
    ) -> ClassificationResult:
        """
        Decode -> fan out -> aggregate -> select.

        Raises InvalidImageError before any recognizer runs,
        AllRecognizersFailedError when nothing produced a signal, and
        RequestCancelledError once ``token`` has been cancelled.
        """
        t0 = time.monotonic()
        image_input = load_image(image, orientation=orientation)
        signals = await self.scheduler.run(image_input, token=token)
        result = select(signals, self.settings)
        if token is not None:
            token.raise_if_cancelled()
        logger.info(
            "Classified {}x{} image as {!r} ({} tags) in {}ms",
            image_input.size[0], image_input.size[1], result.name, len(result.tags),
            int((time.monotonic() - t0) * 1000),
        )
        return result

    def classify_sync(self, image: ImageSource, orientation: Optional[Any] = None) -> ClassificationResult:
        """Blocking wrapper for scripts; do not call from a running event loop."""
        return asyncio.run(self.classify(image, orientation=orientation))


ResultCallback = Callable[[ClassificationResult], None]
ErrorCallback = Callable[[BaseException], None]


class ClassificationSlot:
    """At most one in-flight classification per slot."""

    def __init__(self, service: VisionService):
        self.service = service
        self._task: Optional[asyncio.Task] = None
        self._token: Optional[CancellationToken] = None

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        """Cancel the current request. Safe to call repeatedly or after completion."""
        if self._token is not None:
            self._token.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def submit(
        self,
        image: ImageSource,
        on_result: ResultCallback,
        on_error: Optional[ErrorCallback] = None,
        orientation: Optional[Any] = None,
    ) -> asyncio.Task:
        """Cancel any predecessor, then start classifying ``image``. Needs a running loop."""
        self.cancel()
        token = CancellationToken()
        self._token = token
        task = asyncio.get_running_loop().create_task(
            self._run(image, orientation, token, on_result, on_error)
        )
        self._task = task
        return task

    async def _run(
        self,
        image: ImageSource,
        orientation: Optional[Any],
        token: CancellationToken,
        on_result: ResultCallback,
        on_error: Optional[ErrorCallback],
    ) -> Optional[ClassificationResult]:
        try:
            result = await self.service.classify(image, orientation=orientation, token=token)
        except asyncio.CancelledError:
            logger.debug("Classification cancelled")
            raise
        except Exception as e:
            if token.cancelled or self._token is not token:
                return None
            if on_error is not None:
                on_error(e)
            else:
                logger.warning("Classification failed: {}: {}", type(e).__name__, e)
            return None

        # a late result for a cancelled or superseded request is dropped
        if token.cancelled or self._token is not token:
            logger.debug("Dropping result of superseded request: {!r}", result.name)
            return None
        on_result(result)
        return result

    async def wait(self) -> Optional[ClassificationResult]:
        """Await the current request; None if it was cancelled or failed."""
        task = self._task
        if task is None:
            return None
        await asyncio.wait({task})
        if task.cancelled():
            return None
        return task.result()
