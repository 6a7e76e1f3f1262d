# vision_fusion/eval.py
from __future__ import annotations

import argparse
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set

import pandas as pd
from loguru import logger

from . import config
from .config import ClassificationResult
from .errors import VisionFusionError

# ---------- label canonicalisation ----------

def _canon_label(label: str) -> str:
    """
    Case/whitespace-insensitive key so 'Cordless  drill' and
    'cordless drill' count as the same answer.
    """
    if not isinstance(label, str) or not label:
        return ""
    return re.sub(r"\s+", " ", label.strip().lower())

def _split_tags(raw) -> List[str]:
    if not isinstance(raw, str) or not raw.strip():
        return []
    return [t.strip() for t in re.split(r"[;,|]", raw) if t.strip()]

# ---------- IO helpers ----------

def _read_labels(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    ext = path.suffix.lower()
    if ext in [".xlsx", ".xls"]:
        df = pd.read_excel(path)
    else:
        df = pd.read_csv(path, encoding="utf-8")
    cols = {c.strip().lower(): c for c in df.columns}
    icol, ncol = cols.get("image_path"), cols.get("expected_name")
    if not icol or not ncol:
        raise ValueError(
            f"Expected columns 'image_path' and 'expected_name'. Found: {list(df.columns)}"
        )
    renames = {icol: "image_path", ncol: "expected_name"}
    if "expected_tags" in cols:
        renames[cols["expected_tags"]] = "expected_tags"
    df = df.rename(columns=renames)
    if "expected_tags" not in df.columns:
        df["expected_tags"] = ""
    # relative image paths are relative to the label file
    df["image_path"] = df["image_path"].astype(str).map(
        lambda p: str(p) if Path(p).is_absolute() else str(path.parent / p)
    )
    return df

# ---------- metrics ----------

def name_accuracy(expected: Dict[str, str], predicted: Dict[str, str]) -> float:
    """Share of images whose predicted name equals the expected one (canonical form)."""
    keys = [k for k in expected if _canon_label(expected[k])]
    if not keys:
        return 0.0
    hits = sum(1 for k in keys if _canon_label(predicted.get(k, "")) == _canon_label(expected[k]))
    return hits / float(len(keys))

def tag_recall_at_k(gold: Set[str], pred_tags: Sequence[str], k: int) -> float:
    gold = {_canon_label(g) for g in gold if _canon_label(g)}
    if not gold:
        return 0.0
    top = {_canon_label(t) for t in pred_tags[:k]}
    return len(gold.intersection(top)) / float(len(gold))

def evaluate(
    results: Dict[str, Optional[ClassificationResult]],
    labels: pd.DataFrame,
    ks: Iterable[int] = (1, 3, 5),
) -> Dict[str, float]:
    """
    results: image_path -> ClassificationResult (None when classify failed)
    A failed image counts as a miss for every metric.
    """
    ks = list(ks)
    expected = {str(r.image_path): str(r.expected_name) for r in labels.itertuples()}
    predicted = {p: (res.name if res is not None else "") for p, res in results.items()}

    scores: Dict[str, float] = {"name_accuracy": name_accuracy(expected, predicted)}
    scores["failed"] = float(sum(1 for p in expected if results.get(p) is None))

    tag_rows = [r for r in labels.itertuples() if _split_tags(r.expected_tags)]
    for k in ks:
        if not tag_rows:
            scores[f"tag_recall@{k}"] = 0.0
            continue
        total = 0.0
        for r in tag_rows:
            res = results.get(str(r.image_path))
            tags = res.tags if res is not None else ()
            total += tag_recall_at_k(set(_split_tags(r.expected_tags)), tags, k)
        scores[f"tag_recall@{k}"] = total / len(tag_rows)
    return scores

# ---------- prediction writer ----------

def write_predictions(results: Dict[str, Optional[ClassificationResult]], path: Path) -> None:
    """Writes CSV with header: image_path,name,tags (tags ';'-joined, empty on failure)."""
    rows = []
    for image_path, res in results.items():
        rows.append({
            "image_path": image_path,
            "name": res.name if res is not None else "",
            "tags": ";".join(res.tags) if res is not None else "",
        })
    df = pd.DataFrame(rows, columns=["image_path", "name", "tags"])
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False, encoding="utf-8")

def classify_all(service, image_paths: Sequence[str]) -> Dict[str, Optional[ClassificationResult]]:
    results: Dict[str, Optional[ClassificationResult]] = {}
    for p in image_paths:
        try:
            results[p] = service.classify_sync(p)
        except VisionFusionError as e:
            logger.warning("Classification failed for {}: {}", p, e)
            results[p] = None
    return results

# ---------- CLI ----------

def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--labels", type=Path, default=config.EVAL_LABELS_PATH,
                    help="CSV/XLSX with image_path, expected_name[, expected_tags]")
    ap.add_argument("--preds_out", type=Path, default=None,
                    help="Optional path to write predictions CSV")
    ap.add_argument("--k", type=int, nargs="+", default=[1, 3, 5])
    args = ap.parse_args()

    from ._singletons import get_vision_service

    labels = _read_labels(args.labels)
    results = classify_all(get_vision_service(), labels["image_path"].tolist())

    if args.preds_out is not None:
        write_predictions(results, args.preds_out)

    scores = evaluate(results, labels, ks=args.k)
    print(f"Images: {len(labels)} (failed: {int(scores['failed'])})")
    print(f"Name accuracy: {scores['name_accuracy']:.4f}")
    for k in args.k:
        print(f"Tag recall@{k}: {scores[f'tag_recall@{k}']:.4f}")

if __name__ == "__main__":
    main()
