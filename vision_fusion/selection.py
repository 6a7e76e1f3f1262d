# vision_fusion/selection.py
from __future__ import annotations

"""
Cross-validation & selection: AggregatedSignals -> ClassificationResult.

1) partition: visual candidates (detector then classifier) sorted by
   confidence desc with a stable sort; OCR lines kept in reported order
2) text validation: drop short / denylisted OCR lines, accept the rest
   only if they agree with one of the top-K visual labels
3) name: longest accepted OCR line > best visual label > default name
4) tags: up to N unique visual labels in confidence order

OCR never contributes tags; it only competes for the name.
"""

from typing import List, Optional, Sequence

from loguru import logger

from .config import ClassificationResult, SelectionSettings
from .normalize import contains_any, title_case, word_set
from .pipeline_types import AggregatedSignals, ScoredCandidate


def sort_visual(candidates: Sequence[ScoredCandidate]) -> List[ScoredCandidate]:
    """Confidence desc; ties keep input order (sorted() is stable)."""
    return sorted(candidates, key=lambda c: -(c.confidence or 0.0))


def is_rejected_text(text: str, settings: SelectionSettings) -> bool:
    if len(text) < settings.min_text_length:
        return True
    return contains_any(text, settings.denylist)


def is_consistent(text: str, label: str) -> bool:
    """
    Loose agreement test between an OCR line and a visual label:
    substring either way, or at least one shared word (case-insensitive).
    """
    a = text.lower()
    b = label.lower()
    if a in b or b in a:
        return True
    return not word_set(a).isdisjoint(word_set(b))


def validate_texts(
    texts: Sequence[ScoredCandidate],
    sorted_visual: Sequence[ScoredCandidate],
    settings: SelectionSettings,
) -> List[ScoredCandidate]:
    """OCR candidates that survive the filters, in reported order."""
    top = sorted_visual[: settings.validation_top_k]
    accepted: List[ScoredCandidate] = []
    for cand in texts:
        if is_rejected_text(cand.text, settings):
            continue
        if any(is_consistent(cand.text, v.text) for v in top):
            accepted.append(cand)
    return accepted


def choose_name(
    validated_texts: Sequence[ScoredCandidate],
    sorted_visual: Sequence[ScoredCandidate],
    settings: SelectionSettings,
) -> str:
    if validated_texts:
        # max() keeps the first of equally long strings
        best = max(validated_texts, key=lambda c: len(c.text))
        return title_case(best.text)
    if sorted_visual:
        return title_case(sorted_visual[0].text)
    return settings.default_name


def choose_tags(sorted_visual: Sequence[ScoredCandidate], settings: SelectionSettings) -> List[str]:
    tags: List[str] = []
    seen = set()
    for cand in sorted_visual:
        if len(tags) >= settings.max_tags:
            break
        tag = title_case(cand.text)
        key = tag.casefold()
        if not tag or key in seen:
            continue
        seen.add(key)
        tags.append(tag)
    return tags


def select(
    signals: AggregatedSignals,
    settings: Optional[SelectionSettings] = None,
) -> ClassificationResult:
    settings = settings or SelectionSettings()

    visual = sort_visual(signals.visual)
    validated = validate_texts(signals.texts, visual, settings)
    name = choose_name(validated, visual, settings)
    tags = choose_tags(visual, settings)

    logger.debug(
        "Selected name={!r} tags={} ({} visual, {}/{} OCR accepted)",
        name, tags, len(visual), len(validated), len(signals.texts),
    )
    return ClassificationResult(name=name, tags=tuple(tags))
