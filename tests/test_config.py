from __future__ import annotations

from pathlib import Path

import pytest

from plugctl.core.config import SERVER_ENV_VAR, SessionConfig, default_config_path, load_config
from plugctl.core.errors import ConfigLoadError, ConfigValidationError


def _write_config(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.delenv(SERVER_ENV_VAR, raising=False)


def test_defaults_without_config_file() -> None:
    loaded = load_config()

    assert loaded.config == SessionConfig()
    assert loaded.source is None
    assert loaded.warnings == ()


def test_user_config_file_is_picked_up(tmp_path: Path) -> None:
    _write_config(
        tmp_path / "cfg" / "plugctl" / "config.yaml",
        """
client_name: living-room
server_address: ws://192.168.1.20:12345/buttplug
connect_timeout_s: 3
""",
    )

    loaded = load_config()

    assert loaded.source == default_config_path()
    assert loaded.config.client_name == "living-room"
    assert loaded.config.server_address == "ws://192.168.1.20:12345/buttplug"
    assert loaded.config.connect_timeout_s == 3.0
    assert loaded.config.close_timeout_s == SessionConfig().close_timeout_s


def test_empty_file_gives_defaults(tmp_path: Path) -> None:
    path = tmp_path / "empty.yaml"
    _write_config(path, "")

    assert load_config(path).config == SessionConfig()


def test_explicit_path_must_exist(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError):
        load_config(tmp_path / "missing.yaml")


@pytest.mark.parametrize(
    "content",
    [
        "server_address: http://localhost:12345\n",
        "connect_timeout_s: 0\n",
        "client_name: ''\n",
        "unknown_key: 1\n",
        "message_version: one\n",
    ],
)
def test_schema_violations_rejected(tmp_path: Path, content: str) -> None:
    path = tmp_path / "bad.yaml"
    _write_config(path, content)

    with pytest.raises(ConfigValidationError, match="Schema validation failed"):
        load_config(path)


def test_duplicate_keys_rejected(tmp_path: Path) -> None:
    path = tmp_path / "dup.yaml"
    _write_config(path, "client_name: a\nclient_name: b\n")

    with pytest.raises(ConfigValidationError, match="Duplicate key 'client_name'"):
        load_config(path)


def test_non_mapping_root_rejected(tmp_path: Path) -> None:
    path = tmp_path / "list.yaml"
    _write_config(path, "- ws://localhost:12345\n")

    with pytest.raises(ConfigValidationError, match="mapping at root"):
        load_config(path)


def test_invalid_yaml_rejected(tmp_path: Path) -> None:
    path = tmp_path / "broken.yaml"
    _write_config(path, "client_name: [unterminated\n")

    with pytest.raises(ConfigValidationError, match="Invalid YAML"):
        load_config(path)


def test_env_override_without_file(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(SERVER_ENV_VAR, "ws://override:1/")

    loaded = load_config()

    assert loaded.config.server_address == "ws://override:1/"
    assert loaded.warnings == ()


def test_env_override_warns_when_file_sets_address(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    _write_config(path, "server_address: wss://remote:443/\n")
    monkeypatch.setenv(SERVER_ENV_VAR, "ws://override:1/")

    loaded = load_config(path)

    assert loaded.config.server_address == "ws://override:1/"
    assert len(loaded.warnings) == 1
    assert SERVER_ENV_VAR in loaded.warnings[0]
