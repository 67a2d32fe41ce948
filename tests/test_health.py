import pytest

from odontosync import config


@pytest.fixture
def static_dir(tmp_path, monkeypatch):
    (tmp_path / "assets").mkdir()
    (tmp_path / "assets" / "index-abc123.js").write_text("console.log('ok');")
    (tmp_path / "assets" / "index-abc123.css").write_text("body{}")
    (tmp_path / "index.html").write_text("<html><body>OdontoSync</body></html>")
    (tmp_path / "favicon.ico").write_bytes(b"\x00\x00")
    monkeypatch.setattr(config, "STATIC_DIR", tmp_path)
    return tmp_path


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"
    assert r.json()["service"] == "OdontoSync"


def test_assets_served_with_media_type(client, static_dir):
    r = client.get("/assets/index-abc123.js")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/javascript")
    assert "max-age" in r.headers["cache-control"]

    css = client.get("/assets/index-abc123.css")
    assert css.headers["content-type"].startswith("text/css")


def test_missing_asset_is_404_not_index(client, static_dir):
    r = client.get("/assets/index-old.js")
    assert r.status_code == 404
    assert r.json()["message"] == "Asset not found"


def test_spa_fallback_serves_index(client, static_dir):
    r = client.get("/patients/12")
    assert r.status_code == 200
    assert "OdontoSync" in r.text
    assert r.headers["content-type"].startswith("text/html")


def test_spa_serves_root_files(client, static_dir):
    r = client.get("/favicon.ico")
    assert r.status_code == 200
    assert r.content == b"\x00\x00"


def test_unknown_api_path_is_json_404(client, static_dir):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert r.json()["message"] == "Not found"


def test_no_build_is_404(client, tmp_path, monkeypatch):
    monkeypatch.setattr(config, "STATIC_DIR", tmp_path / "missing")
    assert client.get("/dashboard").status_code == 404
