"""
Runtime configuration and YAML profile loading.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

LOG = logging.getLogger(__name__)

ENV_CONFIG_VAR = "LANLINK_CONFIG"
CONFIG_DIR = Path(__file__).resolve().parent / "configs"
PROFILES_PATH = CONFIG_DIR / "profiles.yaml"

DEFAULT_STUN_URLS = (
    "stun:stun.l.google.com:19302",
    "stun:stun1.l.google.com:19302",
)


class ConfigError(ValueError):
    """Raised when a profile entry cannot be interpreted."""


@dataclass(frozen=True)
class IceServer:
    urls: List[str]
    username: Optional[str] = None
    credential: Optional[str] = None

    def to_dict(self) -> dict:
        payload: Dict[str, Any] = {"urls": list(self.urls)}
        if self.username is not None:
            payload["username"] = self.username
        if self.credential is not None:
            payload["credential"] = self.credential
        return payload

    @classmethod
    def from_dict(cls, payload: Any) -> "IceServer":
        if isinstance(payload, str):
            return cls(urls=[payload])
        if not isinstance(payload, dict):
            raise ConfigError(f"ICE server entry must be a mapping, got {type(payload).__name__}")
        urls = payload.get("urls")
        if isinstance(urls, str):
            urls = [urls]
        if not urls or not all(isinstance(url, str) and url for url in urls):
            raise ConfigError("ICE server entry requires at least one url")
        return cls(
            urls=list(urls),
            username=payload.get("username"),
            credential=payload.get("credential"),
        )


def _default_ice_servers() -> List[IceServer]:
    return [IceServer(urls=[url]) for url in DEFAULT_STUN_URLS]


@dataclass
class CaptureSettings:
    """
    Parameters handed to the capture device.

    ``device`` and ``format`` are passed to ffmpeg through PyAV, e.g.
    ``/dev/video0`` + ``v4l2`` on Linux or ``default:default`` +
    ``avfoundation`` on macOS.
    """

    device: str = "/dev/video0"
    format: Optional[str] = "v4l2"
    options: Dict[str, str] = field(default_factory=lambda: {"video_size": "640x480", "framerate": "30"})
    audio: bool = True

    @classmethod
    def from_dict(cls, payload: Any) -> "CaptureSettings":
        if payload is None:
            return cls()
        if not isinstance(payload, dict):
            raise ConfigError("capture section must be a mapping")
        defaults = cls()
        options = payload.get("options", defaults.options)
        if not isinstance(options, dict):
            raise ConfigError("capture.options must be a mapping")
        return cls(
            device=str(payload.get("device", defaults.device)),
            format=payload.get("format", defaults.format),
            options={str(key): str(value) for key, value in options.items()},
            audio=bool(payload.get("audio", defaults.audio)),
        )


@dataclass
class LinkConfig:
    """Top level LANLink configuration."""

    profile: str = "default"
    ice_servers: List[IceServer] = field(default_factory=_default_ice_servers)
    capture: CaptureSettings = field(default_factory=CaptureSettings)

    def to_dict(self) -> dict:
        return {
            "profile": self.profile,
            "iceServers": [server.to_dict() for server in self.ice_servers],
            "capture": {
                "device": self.capture.device,
                "format": self.capture.format,
                "options": dict(self.capture.options),
                "audio": self.capture.audio,
            },
        }


def profiles_path() -> Path:
    env_path = os.environ.get(ENV_CONFIG_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return PROFILES_PATH


def read_profiles(path: Optional[Path] = None) -> Dict[str, Any]:
    target = path or profiles_path()
    try:
        with target.open("r", encoding="utf-8") as handle:
            profiles = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        LOG.debug("No profiles file at %s; using defaults", target)
        return {}
    if not isinstance(profiles, dict):
        raise ConfigError(f"{target} must contain a mapping of profiles")
    return profiles


def load_config(profile: str = "default", path: Optional[Path] = None) -> LinkConfig:
    profiles = read_profiles(path)
    entry = profiles.get(profile)
    if entry is None:
        if profiles:
            LOG.warning("Profile '%s' not found; falling back to defaults", profile)
        return LinkConfig(profile=profile)
    if not isinstance(entry, dict):
        raise ConfigError(f"Profile '{profile}' must be a mapping")

    ice_entries = entry.get("ice_servers", entry.get("iceServers"))
    if ice_entries is None:
        ice_servers = _default_ice_servers()
    elif isinstance(ice_entries, list):
        ice_servers = [IceServer.from_dict(item) for item in ice_entries]
    else:
        raise ConfigError("ice_servers must be a list")

    return LinkConfig(
        profile=profile,
        ice_servers=ice_servers,
        capture=CaptureSettings.from_dict(entry.get("capture")),
    )


__all__ = [
    "CaptureSettings",
    "ConfigError",
    "IceServer",
    "LinkConfig",
    "load_config",
    "read_profiles",
]
