"""Tests covering profile loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from lanlink.config import (
    DEFAULT_STUN_URLS,
    PROFILES_PATH,
    ConfigError,
    IceServer,
    LinkConfig,
    load_config,
)


def test_defaults_use_public_stun_servers() -> None:
    config = LinkConfig()

    assert [server.urls[0] for server in config.ice_servers] == list(DEFAULT_STUN_URLS)
    assert config.capture.audio is True


def test_bundled_profiles_load() -> None:
    default = load_config("default", PROFILES_PATH)
    lan_only = load_config("lan-only", PROFILES_PATH)
    macos = load_config("macos", PROFILES_PATH)

    assert [server.urls for server in default.ice_servers] == [[url] for url in DEFAULT_STUN_URLS]
    assert lan_only.ice_servers == []
    assert macos.capture.format == "avfoundation"
    assert macos.capture.audio is False
    assert macos.ice_servers == LinkConfig().ice_servers


def test_profile_with_turn_credentials(tmp_path: Path) -> None:
    path = tmp_path / "profiles.yaml"
    path.write_text(
        "office:\n"
        "  iceServers:\n"
        "    - urls:\n"
        "        - turn:turn.example.com:3478\n"
        "        - turns:turn.example.com:5349\n"
        "      username: alice\n"
        "      credential: secret\n"
        "  capture:\n"
        "    device: /dev/video2\n"
        "    options: {framerate: 15}\n",
        encoding="utf-8",
    )

    config = load_config("office", path)

    assert config.profile == "office"
    assert config.ice_servers == [
        IceServer(
            urls=["turn:turn.example.com:3478", "turns:turn.example.com:5349"],
            username="alice",
            credential="secret",
        )
    ]
    assert config.capture.device == "/dev/video2"
    assert config.capture.options == {"framerate": "15"}
    assert config.to_dict()["iceServers"][0]["username"] == "alice"


def test_missing_file_and_profile_fall_back(tmp_path: Path) -> None:
    assert load_config("default", tmp_path / "absent.yaml") == LinkConfig()
    assert load_config("nope", PROFILES_PATH).ice_servers == LinkConfig().ice_servers


def test_env_var_overrides_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "custom.yaml"
    path.write_text("default:\n  ice_servers: []\n", encoding="utf-8")
    monkeypatch.setenv("LANLINK_CONFIG", str(path))

    assert load_config().ice_servers == []


@pytest.mark.parametrize(
    "content",
    [
        "- just\n- a list\n",
        "default: 3\n",
        "default:\n  ice_servers: stun:example.org\n",
        "default:\n  ice_servers:\n    - {username: bob}\n",
        "default:\n  capture: [1, 2]\n",
    ],
)
def test_malformed_profiles_raise(tmp_path: Path, content: str) -> None:
    path = tmp_path / "profiles.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config("default", path)
