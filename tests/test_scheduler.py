import asyncio
import threading
import time

import pytest
from PIL import Image

from vision_fusion.errors import AllRecognizersFailedError, RequestCancelledError
from vision_fusion.imaging import ImageInput
from vision_fusion.pipeline_types import SignalKind
from vision_fusion.recognizers import Recognizer, StaticRecognizer
from vision_fusion.scheduler import CancellationToken, FanOutScheduler
from vision_fusion.selection import select

DET = SignalKind.OBJECT_DETECTION
CLS = SignalKind.CLASSIFICATION
OCR = SignalKind.TEXT_RECOGNITION


def _input():
    return ImageInput(image=Image.new("RGB", (8, 8)))


class FakeRecognizer(Recognizer):
    """Recognizer whose detect() is any callable; used to script failures and delays."""

    def __init__(self, kind, fn, name=None, fail_load=False):
        self.kind = kind
        super().__init__(name or f"fake_{kind.value}")
        self._fn = fn
        self._fail_load = fail_load
        self.calls = 0

    def _load(self):
        if self._fail_load:
            raise RuntimeError("weights missing")

    def detect(self, image, orientation):
        self.calls += 1
        return self._fn()


def _loaded(*recs):
    for r in recs:
        r.load()
    return list(recs)


def _static(kind, output, name=None):
    return StaticRecognizer(kind, output, name=name)


def test_all_recognizers_succeed():
    recs = _loaded(
        _static(DET, [("cup", 0.9)]),
        _static(CLS, [("coffee mug", 0.6)]),
        _static(OCR, ["Coffee Mug Deluxe"]),
    )
    signals = asyncio.run(FanOutScheduler(recs, timeout_s=5).run(_input()))
    assert [c.text for c in signals.visual] == ["cup", "coffee mug"]
    assert [c.text for c in signals.texts] == ["Coffee Mug Deluxe"]
    assert signals.failures == {}


def test_one_failure_does_not_affect_siblings():
    def boom():
        raise RuntimeError("inference crashed")

    recs = _loaded(
        FakeRecognizer(DET, boom, name="detector"),
        _static(CLS, [("hammer", 0.8), ("tool", 0.95)]),
    )
    signals = asyncio.run(FanOutScheduler(recs, timeout_s=5).run(_input()))
    assert "detector" in signals.failures
    assert "inference crashed" in signals.failures["detector"]
    result = select(signals)
    assert result.name == "Tool"
    assert result.tags == ("Tool", "Hammer")


def test_unavailable_recognizer_is_skipped():
    broken = FakeRecognizer(OCR, lambda: ["never"], fail_load=True)
    recs = _loaded(broken, _static(CLS, [("lamp", 0.4)]))
    scheduler = FanOutScheduler(recs, timeout_s=5)
    outcomes = asyncio.run(scheduler.collect(_input()))
    assert [o.recognizer for o in outcomes] == ["static_classification"]
    assert broken.calls == 0
    signals = asyncio.run(scheduler.run(_input()))
    assert signals.failures == {}


def test_every_recognizer_failing_is_total_failure():
    def boom():
        raise ValueError("bad input")

    recs = _loaded(FakeRecognizer(DET, boom, name="a"), FakeRecognizer(CLS, boom, name="b"))
    with pytest.raises(AllRecognizersFailedError) as excinfo:
        asyncio.run(FanOutScheduler(recs, timeout_s=5).run(_input()))
    assert set(excinfo.value.failures) == {"a", "b"}


def test_no_available_recognizer_is_total_failure():
    recs = _loaded(FakeRecognizer(DET, lambda: [], fail_load=True))
    with pytest.raises(AllRecognizersFailedError):
        asyncio.run(FanOutScheduler(recs, timeout_s=5).run(_input()))


def test_success_with_zero_candidates_is_not_a_failure():
    recs = _loaded(_static(DET, []), _static(OCR, []))
    signals = asyncio.run(FanOutScheduler(recs, timeout_s=5).run(_input()))
    assert signals.is_empty
    result = select(signals)
    assert result.name == "New Item"
    assert result.tags == ()


def test_timeout_counts_as_failure():
    def slow():
        time.sleep(0.5)
        return [("late label", 0.99)]

    recs = _loaded(FakeRecognizer(DET, slow, name="slow"), _static(CLS, [("kettle", 0.5)]))
    signals = asyncio.run(FanOutScheduler(recs, timeout_s=0.05).run(_input()))
    assert "timed out" in signals.failures["slow"]
    assert select(signals).name == "Kettle"


def test_recognizers_run_concurrently():
    # each detect() blocks until all three are inside detect() at once
    barrier = threading.Barrier(3, timeout=5)

    def meet(output):
        def fn():
            barrier.wait()
            return output
        return fn

    recs = _loaded(
        FakeRecognizer(DET, meet([("cup", 0.5)])),
        FakeRecognizer(CLS, meet([("mug", 0.4)])),
        FakeRecognizer(OCR, meet(["Coffee Mug"])),
    )
    signals = asyncio.run(FanOutScheduler(recs, timeout_s=10).run(_input()))
    assert signals.failures == {}
    assert len(signals.visual) == 2


def test_completion_order_does_not_change_result():
    def delayed(seconds, output):
        def fn():
            time.sleep(seconds)
            return output
        return fn

    det_out = [("screwdriver", 0.9), ("tool", 0.9)]
    cls_out = [("power drill", 0.9), ("drill", 0.4)]
    ocr_out = ["Cordless Drill", "Made in USA"]

    def run(delays):
        recs = _loaded(
            FakeRecognizer(DET, delayed(delays[0], det_out)),
            FakeRecognizer(CLS, delayed(delays[1], cls_out)),
            FakeRecognizer(OCR, delayed(delays[2], ocr_out)),
        )
        return asyncio.run(FanOutScheduler(recs, timeout_s=5).run(_input()))

    a = run((0.0, 0.05, 0.1))
    b = run((0.1, 0.05, 0.0))
    assert a == b
    result = select(a)
    assert result == select(b)
    assert result.name == "Cordless Drill"
    assert result.tags == ("Screwdriver", "Tool", "Power Drill", "Drill")


def test_cancellation_propagates_to_recognizer_tasks():
    started = threading.Event()
    release = threading.Event()

    def blocking():
        started.set()
        release.wait(5)
        return [("cup", 0.9)]

    recs = _loaded(FakeRecognizer(DET, blocking))
    scheduler = FanOutScheduler(recs, timeout_s=10)
    token = CancellationToken()

    async def scenario():
        task = asyncio.create_task(scheduler.run(_input(), token=token))
        while not started.is_set():
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert token.cancelled
        release.set()

    asyncio.run(scenario())


def test_cancellation_token_is_idempotent():
    token = CancellationToken()
    assert not token.cancelled
    token.cancel()
    token.cancel()
    assert token.cancelled


def test_token_cancel_discards_finished_siblings():
    started = threading.Event()
    release = threading.Event()

    def blocking():
        started.set()
        release.wait(5)
        return ["Coffee Mug Deluxe"]

    recs = _loaded(_static(CLS, [("mug", 0.7)]), FakeRecognizer(OCR, blocking))
    token = CancellationToken()

    async def scenario():
        task = asyncio.create_task(FanOutScheduler(recs, timeout_s=10).run(_input(), token=token))
        while not started.is_set():
            await asyncio.sleep(0.01)
        token.cancel()
        release.set()
        with pytest.raises(RequestCancelledError):
            await task

    asyncio.run(scenario())
