from __future__ import annotations

"""
Fan-out scheduler: run every available recognizer concurrently on one
image and collect whatever subset succeeds.

- one task per recognizer, each in its own worker thread
- independent deadline per recognizer; a timeout counts as a failure
- wait-for-all join, no early exit on first success
- each task only writes its own outcome slot, so no locking is needed
- cancelling the awaiting coroutine cancels every recognizer task and
  flips the shared CancellationToken so threads already inside a model
  call drop their output as soon as it returns
- cancelling the token directly has the same effect: collect() raises
  RequestCancelledError instead of returning whatever finished first
"""

import asyncio
import threading
import time
from typing import List, Optional, Sequence

from loguru import logger

from . import config
from .aggregate import aggregate
from .errors import AllRecognizersFailedError, RequestCancelledError
from .imaging import ImageInput
from .pipeline_types import AggregatedSignals, RecognitionOutcome
from .recognizers import Recognizer


class CancellationToken:
    """Thread-safe, idempotent cancellation flag shared by one request."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelledError("request cancelled")


def _elapsed_ms(t0: float) -> int:
    return int((time.monotonic() - t0) * 1000)


class FanOutScheduler:
    def __init__(
        self,
        recognizers: Sequence[Recognizer],
        timeout_s: Optional[float] = None,
    ):
        self.recognizers = list(recognizers)
        self.timeout_s = config.RECOGNIZER_TIMEOUT_S if timeout_s is None else float(timeout_s)

    def available(self) -> List[Recognizer]:
        return [r for r in self.recognizers if r.available]

    async def _run_one(
        self,
        recognizer: Recognizer,
        image_input: ImageInput,
        token: CancellationToken,
    ) -> RecognitionOutcome:
        t0 = time.monotonic()
        try:
            candidates = await asyncio.wait_for(
                asyncio.to_thread(recognizer.run, image_input, token),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning("Recognizer '{}' timed out after {:.1f}s", recognizer.name, self.timeout_s)
            return RecognitionOutcome.failure(
                recognizer.name, recognizer.kind, f"timed out after {self.timeout_s:.1f}s", _elapsed_ms(t0)
            )
        except (asyncio.CancelledError, RequestCancelledError):
            raise
        except Exception as e:
            logger.warning("Recognizer '{}' failed: {}: {}", recognizer.name, type(e).__name__, e)
            return RecognitionOutcome.failure(
                recognizer.name, recognizer.kind, f"{type(e).__name__}: {e}", _elapsed_ms(t0)
            )
        return RecognitionOutcome.success(recognizer.name, recognizer.kind, candidates, _elapsed_ms(t0))

    async def collect(
        self,
        image_input: ImageInput,
        token: Optional[CancellationToken] = None,
    ) -> List[RecognitionOutcome]:
        """Run all available recognizers and return one outcome per launched task."""
        token = token or CancellationToken()
        token.raise_if_cancelled()
        active = self.available()
        if not active:
            return []

        tasks = [
            asyncio.create_task(self._run_one(r, image_input, token), name=f"recognizer:{r.name}")
            for r in active
        ]
        try:
            outcomes = await asyncio.gather(*tasks)
        except (asyncio.CancelledError, RequestCancelledError):
            token.cancel()
            for t in tasks:
                t.cancel()
            # let the tasks observe their cancellation before we re-raise
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        # a cancelled request yields no outcomes, not a partial set
        token.raise_if_cancelled()
        return list(outcomes)

    async def run(
        self,
        image_input: ImageInput,
        token: Optional[CancellationToken] = None,
    ) -> AggregatedSignals:
        outcomes = await self.collect(image_input, token)
        if not outcomes:
            raise AllRecognizersFailedError({
                r.name: r.unavailable_reason or "unavailable" for r in self.recognizers
            })
        if not any(o.ok for o in outcomes):
            raise AllRecognizersFailedError({o.recognizer: o.error or "" for o in outcomes})
        for o in outcomes:
            if o.ok:
                logger.debug("Recognizer '{}' -> {} candidates in {}ms", o.recognizer, len(o.candidates), o.elapsed_ms)
        return aggregate(outcomes)
