import pytest

pytest.importorskip("huggingface_hub")

import download_models  # noqa: E402


def test_fetches_every_configured_hub_model(monkeypatch, tmp_path):
    fetched = []

    def fake_snapshot(repo_id, local_files_only):
        fetched.append(repo_id)
        path = tmp_path / repo_id.replace("/", "--")
        path.mkdir()
        (path / "config.json").write_text("{}")
        return str(path)

    monkeypatch.setattr(download_models, "snapshot_download", fake_snapshot)
    paths = download_models._fetch_hub_models({"object_detection": "org/det", "classification": "org/cls"})
    assert fetched == ["org/det", "org/cls"]
    assert set(paths) == {"object_detection", "classification"}
