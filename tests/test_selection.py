from vision_fusion.config import SelectionSettings
from vision_fusion.pipeline_types import AggregatedSignals, ScoredCandidate, SignalKind
from vision_fusion.selection import (
    choose_tags,
    is_consistent,
    is_rejected_text,
    select,
    sort_visual,
    validate_texts,
)

DET = SignalKind.OBJECT_DETECTION
CLS = SignalKind.CLASSIFICATION


def det(text, conf):
    return ScoredCandidate.visual(text, conf, DET)


def cls(text, conf):
    return ScoredCandidate.visual(text, conf, CLS)


def ocr(text):
    return ScoredCandidate.textual(text)


def test_fallback_to_highest_confidence_visual():
    signals = AggregatedSignals(classifications=(cls("hammer", 0.8), cls("tool", 0.95)))
    result = select(signals)
    assert result.name == "Tool"
    assert result.tags == ("Tool", "Hammer")


def test_validated_text_beats_visual():
    signals = AggregatedSignals(
        detections=(det("screwdriver", 0.9),),
        classifications=(cls("power drill", 0.4),),
        texts=(ocr("Cordless Drill"),),
    )
    result = select(signals)
    assert result.name == "Cordless Drill"
    # OCR never becomes a tag
    assert result.tags == ("Screwdriver", "Power Drill")


def test_no_signal_gives_default_name_and_no_tags():
    result = select(AggregatedSignals())
    assert result.name == "New Item"
    assert result.tags == ()


def test_dedup_keeps_first_in_confidence_order():
    signals = AggregatedSignals(
        classifications=(cls("Box", 0.9), cls("box", 0.8), cls("Box", 0.7), cls("tape", 0.75))
    )
    result = select(signals)
    assert result.tags == ("Box", "Tape")
    assert [t.lower() for t in result.tags].count("box") == 1


def test_tags_capped_at_five_and_sorted():
    labels = [("a1", 0.1), ("b2", 0.9), ("c3", 0.5), ("d4", 0.7), ("e5", 0.3), ("f6", 0.6), ("g7", 0.2)]
    signals = AggregatedSignals(classifications=tuple(cls(t, c) for t, c in labels))
    result = select(signals)
    assert result.tags == ("B2", "D4", "F6", "C3", "E5")


def test_short_text_never_becomes_name():
    # "Tool" matches the visual label exactly, but is only 4 chars
    signals = AggregatedSignals(classifications=(cls("tool", 0.5),), texts=(ocr("Tool"),))
    assert select(signals).name == "Tool"
    assert is_rejected_text("Tool", SelectionSettings())
    assert not is_rejected_text("Tools", SelectionSettings())


def test_denylisted_text_never_becomes_name():
    signals = AggregatedSignals(
        classifications=(cls("item", 0.3),),
        texts=(ocr("No item found on shelf"), ocr("ITEM NOT FOUND")),
    )
    result = select(signals)
    assert result.name == "Item"


def test_unvalidated_text_is_ignored():
    signals = AggregatedSignals(classifications=(cls("coffee mug", 0.7),), texts=(ocr("Made in Portugal"),))
    assert select(signals).name == "Coffee Mug"


def test_text_without_visual_signal_is_never_accepted():
    signals = AggregatedSignals(texts=(ocr("Cordless Drill"),))
    result = select(signals)
    assert result.name == "New Item"
    assert result.tags == ()


def test_longest_validated_text_wins_first_seen_on_tie():
    signals = AggregatedSignals(
        classifications=(cls("drill", 0.6),),
        texts=(ocr("drill bits"), ocr("Drill Press"), ocr("drill drive"), ocr("drill")),
    )
    # "Drill Press" and "drill drive" are both 11 chars; the first one wins
    assert select(signals).name == "Drill Press"


def test_text_only_validated_against_top_k_visual():
    visual = tuple(cls(f"label{i}", 1.0 - i * 0.01) for i in range(10)) + (cls("kettle", 0.01),)
    signals = AggregatedSignals(classifications=visual, texts=(ocr("Electric Kettle"),))
    # "kettle" is 11th by confidence, so the OCR line is not validated
    assert select(signals).name == "Label0"

    settings = SelectionSettings(validation_top_k=11)
    assert select(signals, settings).name == "Electric Kettle"


def test_is_consistent_substring_and_word_overlap():
    assert is_consistent("Wine Glass Set", "wine glass")
    assert is_consistent("mug", "COFFEE MUG")
    assert is_consistent("Stainless Bottle", "water bottle")
    assert not is_consistent("Cordless Drill", "screwdriver")


def test_sort_visual_is_stable_for_ties():
    a = det("alpha", 0.5)
    b = cls("beta", 0.5)
    c = det("gamma", 0.9)
    assert [x.text for x in sort_visual([a, b, c])] == ["gamma", "alpha", "beta"]


def test_detector_beats_classifier_on_confidence_tie():
    signals = AggregatedSignals(detections=(det("cup", 0.8),), classifications=(cls("mug", 0.8),))
    result = select(signals)
    assert result.name == "Cup"
    assert result.tags == ("Cup", "Mug")


def test_validate_texts_keeps_reported_order():
    visual = sort_visual([cls("lamp shade", 0.4)])
    texts = [ocr("Desk Lamp"), ocr("shade"), ocr("Table lamp")]
    out = validate_texts(texts, visual, SelectionSettings())
    assert [c.text for c in out] == ["Desk Lamp", "shade", "Table lamp"]


def test_choose_tags_title_cases():
    tags = choose_tags(sort_visual([cls("t-shirt", 0.9), cls("wine glass", 0.5)]), SelectionSettings())
    assert tags == ["T-Shirt", "Wine Glass"]


def test_custom_default_name():
    settings = SelectionSettings(default_name="Unknown")
    assert select(AggregatedSignals(), settings).name == "Unknown"
