from pathlib import Path

import pytest

from worker.config import WorkerConfig, load_config


def test_load_config_defaults(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text('version: "2.0.0"', encoding="utf-8")

    cfg = load_config(path)

    assert isinstance(cfg, WorkerConfig)
    assert cfg.version == "2.0.0"
    assert cfg.fetch_timeout_sec == 10.0
    assert cfg.static_files[0] == "/"
    assert cfg.static_cache_name == "ipwatch-static-v2.0.0"
    assert cfg.dynamic_cache_name == "ipwatch-dynamic-v2.0.0"


def test_env_overrides(monkeypatch, tmp_path):
    source = tmp_path / "config.yml"
    source.write_text("cache_prefix: app-", encoding="utf-8")

    monkeypatch.setenv("WORKER_VERSION", "3")
    monkeypatch.setenv("FETCH_TIMEOUT_SEC", "2.5")
    monkeypatch.setenv("INSTALL_BEST_EFFORT", "true")
    monkeypatch.setenv("IPINFO_TOKEN", "secret")

    cfg = load_config(source)

    assert cfg.version == "3"
    assert cfg.fetch_timeout_sec == 2.5
    assert cfg.install_best_effort is True
    assert cfg.lookup.token == "secret"
    assert cfg.static_cache_name == "app-static-v3"


def test_partition_names_embed_version():
    v1 = WorkerConfig.from_dict({"version": "1"})
    v2 = WorkerConfig.from_dict({"version": "2"})

    assert v1.static_cache_name != v2.static_cache_name
    assert v1.dynamic_cache_name != v2.dynamic_cache_name
    assert "v1" in v1.versioned_name


def test_shipped_defaults_load():
    cfg = load_config(Path(__file__).parent.parent / "config" / "worker.defaults.yml")

    assert cfg.offline_page == "/offline.html"
    assert "/manifest.json" in cfg.static_files
    assert "fonts.gstatic.com" in cfg.font_hosts


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yml")
