"""
Prefetch recognizer weights so the app can start with HF_HUB_OFFLINE=1.

    python download_models.py [--skip_ocr]
"""
from pathlib import Path
import argparse
import os
from typing import Dict

from huggingface_hub import snapshot_download
from vision_fusion import config


def _fetch_hub_models(repos: Dict[str, str]) -> Dict[str, str]:
    paths: Dict[str, str] = {}
    for kind, repo_id in repos.items():
        print(f"\n[{kind}] downloading {repo_id}")
        local_path = snapshot_download(repo_id=repo_id, local_files_only=False)
        if not (Path(local_path) / "config.json").exists():
            print(f"  WARNING: config.json missing in {local_path}")
        paths[kind] = local_path
    return paths


def _fetch_ocr_weights(languages) -> bool:
    # easyocr keeps its own weights under ~/.EasyOCR; building a reader pulls them
    try:
        import easyocr
        easyocr.Reader(languages, gpu=False, verbose=False)
    except Exception as e:
        print(f"\nWARNING: easyocr weights not fetched: {e}")
        return False
    return True


def main() -> None:
    ap = argparse.ArgumentParser(description="Download recognizer models for offline use.")
    ap.add_argument("--skip_ocr", action="store_true", help="only fetch Hugging Face models")
    args = ap.parse_args()

    os.environ.update(config.HF_ENV_VARS)
    os.environ["HF_HUB_OFFLINE"] = "0"  # this script is the one place allowed online
    print(f"Using HF_HOME: {Path(os.environ.get('HF_HOME', str(config.MODELS_DIR))).resolve()}")

    paths = _fetch_hub_models(config.HF_MODEL_REPOS)
    ocr_ok = args.skip_ocr or _fetch_ocr_weights(config.OCR_LANGUAGES)

    print("\nSummary:")
    for kind, path in paths.items():
        print(f"  {kind:<18} {path}")
    if not args.skip_ocr:
        print(f"  {'text_recognition':<18} {'ready' if ocr_ok else 'MISSING'} ({', '.join(config.OCR_LANGUAGES)})")


if __name__ == "__main__":
    main()
