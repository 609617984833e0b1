"""
Configuration Tests
===================

Settings loading and StreamConfig resolution.
"""

import pytest
from pydantic import ValidationError

from camstream.config import CameraConfig, Settings, load_config
from camstream.stream.source_config import StreamConfig, resolve_template


class TestTemplates:
    """[USERNAME] / [PASSWORD] / [CHANNEL] substitution."""

    def test_resolve_all_placeholders(self):
        text = "http://cam/video?user=[USERNAME]&pwd=[PASSWORD]&ch=[CHANNEL]"
        assert resolve_template(text, "admin", "pw", "3") == "http://cam/video?user=admin&pwd=pw&ch=3"

    def test_missing_values_become_empty(self):
        assert resolve_template("[USERNAME]:[PASSWORD]", None, None, None) == ":"

    def test_create_resolves_url_cookies_headers(self):
        config = StreamConfig.create(
            url=" http://cam/[CHANNEL]/mjpg ",
            login="admin",
            password="pw",
            channel="1",
            cookies="auth=[USERNAME]",
            headers="X-Pass=[PASSWORD]",
        )

        assert config.url == "http://cam/1/mjpg"
        assert config.cookies == "auth=admin"
        assert config.headers == "X-Pass=pw"

    def test_repr_hides_password(self):
        config = StreamConfig.create(url="http://cam", login="admin", password="hunter2")
        assert "hunter2" not in repr(config)

    def test_timeout_in_seconds(self):
        assert StreamConfig.create(url="http://cam", request_timeout_ms=2500).request_timeout == 2.5

    def test_has_credentials(self):
        assert StreamConfig.create(url="http://cam", password="x").has_credentials
        assert not StreamConfig.create(url="http://cam").has_credentials

    def test_from_settings(self):
        camera = CameraConfig(
            url="http://cam/[CHANNEL]",
            channel="4",
            mode="jpeg",
            proxy="",
            max_fps=5,
        )

        config = StreamConfig.from_settings(camera)

        assert config.url == "http://cam/4"
        assert config.mode == "jpeg"
        assert config.proxy is None
        assert config.max_fps == 5


class TestLoadConfig:
    """YAML file and environment overrides."""

    def test_defaults_without_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CAMSTREAM_URL", raising=False)
        settings = load_config(str(tmp_path / "missing.yaml"))

        assert settings.camera.url == ""
        assert settings.camera.mode == "multipart"
        assert settings.ingestion.max_consecutive_errors == 3
        assert settings.ingestion.retry_backoff_ms == 250
        assert settings.ingestion.buffer_size == 1024 * 1024

    def test_yaml_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CAMSTREAM_URL", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text(
            "camera:\n"
            "  url: http://cam/stream\n"
            "  use_http10: true\n"
            "ingestion:\n"
            "  max_queue_size: 5\n"
        )

        settings = load_config(str(path))

        assert settings.camera.url == "http://cam/stream"
        assert settings.camera.use_http10 is True
        assert settings.ingestion.max_queue_size == 5

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("camera:\n  url: http://from-file/\n")
        monkeypatch.setenv("CAMSTREAM_URL", "http://from-env/")
        monkeypatch.setenv("CAMSTREAM_MODE", "jpeg")
        monkeypatch.setenv("CAMSTREAM_RETRY_BACKOFF_MS", "1000")
        monkeypatch.setenv("CAMSTREAM_LOG_LEVEL", "DEBUG")

        settings = load_config(str(path))

        assert settings.camera.url == "http://from-env/"
        assert settings.camera.mode == "jpeg"
        assert settings.ingestion.retry_backoff_ms == 1000
        assert settings.logging.level == "DEBUG"

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CAMSTREAM_URL", raising=False)
        path = tmp_path / "camera.yaml"
        path.write_text("camera:\n  channel: '7'\n")
        monkeypatch.setenv("CAMSTREAM_CONFIG", str(path))

        assert load_config().camera.channel == "7"

    def test_invalid_mode_rejected(self):
        with pytest.raises(ValidationError):
            Settings.model_validate({"camera": {"mode": "rtsp"}})
