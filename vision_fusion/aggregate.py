"""
Signal aggregation: merge per-recognizer outcomes into one AggregatedSignals.

Pure merge. No ranking, no filtering. Outcomes are put into a fixed
(kind, recognizer name) order first, so the order in which concurrent
recognizers finished never shows up in the result.
"""

from __future__ import annotations

from typing import Dict, Iterable, List

from loguru import logger

from .pipeline_types import KIND_ORDER, AggregatedSignals, RecognitionOutcome, ScoredCandidate, SignalKind


def _outcome_key(outcome: RecognitionOutcome):
    return (KIND_ORDER.index(outcome.kind), outcome.recognizer)


def aggregate(outcomes: Iterable[RecognitionOutcome]) -> AggregatedSignals:
    buckets: Dict[SignalKind, List[ScoredCandidate]] = {k: [] for k in KIND_ORDER}
    failures: Dict[str, str] = {}

    for outcome in sorted(outcomes, key=_outcome_key):
        if not outcome.ok:
            failures[outcome.recognizer] = outcome.error or ""
            logger.warning("Dropping failed outcome from '{}': {}", outcome.recognizer, outcome.error)
            continue
        for cand in outcome.candidates:
            # a recognizer only ever emits its own kind, but bucket by the
            # candidate's source so provenance is never rewritten
            buckets[cand.source].append(cand)

    return AggregatedSignals(
        detections=tuple(buckets[SignalKind.OBJECT_DETECTION]),
        classifications=tuple(buckets[SignalKind.CLASSIFICATION]),
        texts=tuple(buckets[SignalKind.TEXT_RECOGNITION]),
        failures=failures,
    )
