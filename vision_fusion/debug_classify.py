# vision_fusion/debug_classify.py
import argparse
import asyncio
from typing import List

from .aggregate import aggregate
from .errors import InvalidImageError
from .imaging import load_image
from .recognizers import ImageClassifier, ObjectDetector, Recognizer, TextRecognizer
from .scheduler import FanOutScheduler
from .selection import select, sort_visual

def _build(args) -> List[Recognizer]:
    recognizers: List[Recognizer] = []
    if not args.no_detector:
        recognizers.append(ObjectDetector())
    if not args.no_classifier:
        recognizers.append(ImageClassifier())
    if not args.no_ocr:
        recognizers.append(TextRecognizer())
    for r in recognizers:
        r.load()
    return recognizers

async def _debug_one(scheduler: FanOutScheduler, path: str, show: int) -> None:
    print(f"=== {path} ===")
    try:
        image_input = load_image(path)
    except InvalidImageError as e:
        print(f"  invalid image: {e}\n")
        return
    print(f"  size={image_input.size} orientation={image_input.orientation.name}")

    outcomes = await scheduler.collect(image_input)
    for o in outcomes:
        if o.ok:
            print(f"  [{o.recognizer}] ok, {len(o.candidates)} candidates, {o.elapsed_ms}ms")
        else:
            print(f"  [{o.recognizer}] FAILED after {o.elapsed_ms}ms: {o.error}")

    signals = aggregate(outcomes)
    print("  Visual (sorted):")
    for c in sort_visual(signals.visual)[:show]:
        print(f"    {c.confidence:.3f}  {c.text}  ({c.source.value})")
    print("  Text (as read):")
    for c in signals.texts[:show]:
        print(f"    {c.text}")

    if not any(o.ok for o in outcomes):
        print("  => analysis failed (no recognizer succeeded)\n")
        return
    result = select(signals)
    print(f"  => name: {result.name}")
    print(f"  => tags: {', '.join(result.tags) if result.tags else '<none>'}\n")

async def _main(args) -> None:
    scheduler = FanOutScheduler(_build(args), timeout_s=args.timeout)
    for path in args.images:
        await _debug_one(scheduler, path, args.show)

if __name__ == "__main__":
    ap = argparse.ArgumentParser()
    ap.add_argument("images", nargs="+")
    ap.add_argument("--timeout", type=float, default=None)
    ap.add_argument("--show", type=int, default=10)
    ap.add_argument("--no_detector", action="store_true")
    ap.add_argument("--no_classifier", action="store_true")
    ap.add_argument("--no_ocr", action="store_true")
    asyncio.run(_main(ap.parse_args()))
