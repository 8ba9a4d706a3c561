"""
Client configuration.

Settings are resolved in three layers: built-in defaults, then an optional
YAML file, then command line flags.  A YAML file either holds the settings
directly or a ``profiles:`` mapping of named setting blocks::

    profiles:
      default:
        room: default-room
      lab:
        server: 10.0.0.2:8080
        negotiation_timeout: 60
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigError
from .rtc.media import MediaProfile
from .signaling.messages import Role, SessionEndpoint

DEFAULT_ROOM = "default-room"
DEFAULT_SERVER = "localhost:8080"
DEFAULT_PROFILE = "default"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ClientConfig:
    room: str = DEFAULT_ROOM
    server: str = DEFAULT_SERVER
    caller: bool = False
    negotiation_timeout: float = 30.0
    send_queue_size: int = 256
    open_timeout: float = 10.0
    stun_server: Optional[str] = "stun://stun.l.google.com:19302"
    turn_server: Optional[str] = None
    video_source: Optional[str] = "videotestsrc pattern=ball is-live=true"
    audio_source: Optional[str] = "audiotestsrc wave=red-noise is-live=true"
    self_view: bool = True
    log_level: str = "INFO"

    @property
    def role(self) -> Role:
        return Role.from_flag(self.caller)

    @property
    def endpoint(self) -> SessionEndpoint:
        return SessionEndpoint(server=self.server, room=self.room)

    def media_profile(self) -> MediaProfile:
        return MediaProfile(
            stun_server=self.stun_server,
            turn_server=self.turn_server,
            video_source=self.video_source,
            audio_source=self.audio_source,
            self_view=self.self_view,
        )

    def apply(self, overrides: Mapping[str, Any]) -> None:
        known = {item.name for item in fields(self)}
        for key, value in overrides.items():
            name = str(key).replace("-", "_")
            if name not in known:
                raise ConfigError(f"unknown setting '{key}'")
            if value is None and name not in {"stun_server", "turn_server", "video_source", "audio_source"}:
                continue
            setattr(self, name, value)

    def validate(self) -> "ClientConfig":
        self.room = str(self.room or "").strip()
        if not self.room:
            raise ConfigError("room must not be empty")
        self.server = str(self.server or "").strip()
        if not self.server or "://" in self.server or "/" in self.server:
            raise ConfigError(f"server must be given as host:port, got '{self.server}'")
        for name in ("caller", "self_view"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigError(f"{name} must be true or false, got {getattr(self, name)!r}")
        try:
            self.negotiation_timeout = float(self.negotiation_timeout)
            self.open_timeout = float(self.open_timeout)
            self.send_queue_size = int(self.send_queue_size)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid numeric setting: {exc}") from exc
        if self.negotiation_timeout < 0:
            raise ConfigError("negotiation_timeout must be non-negative")
        if self.open_timeout <= 0:
            raise ConfigError("open_timeout must be positive")
        if self.send_queue_size < 1:
            raise ConfigError("send_queue_size must be at least 1")
        self.log_level = str(self.log_level or "INFO").upper()
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"unknown log level '{self.log_level}'")
        return self


def load_profile(path: Path, profile: Optional[str] = None) -> Dict[str, Any]:
    """
    Read one settings block from a YAML file.
    """

    try:
        with path.open("r", encoding="utf-8") as handle:
            document = yaml.safe_load(handle) or {}
    except FileNotFoundError as exc:
        raise ConfigError(f"configuration file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc

    if not isinstance(document, dict):
        raise ConfigError(f"{path} must contain a mapping")

    profiles = document.get("profiles")
    if profiles is None:
        if profile not in (None, DEFAULT_PROFILE):
            raise ConfigError(f"{path} defines no profiles; cannot select '{profile}'")
        return dict(document)
    if not isinstance(profiles, dict):
        raise ConfigError(f"'profiles' in {path} must be a mapping")

    name = profile or DEFAULT_PROFILE
    selected = profiles.get(name)
    if selected is None:
        if profile is None:
            return {}
        raise ConfigError(f"profile '{name}' not found in {path}")
    if not isinstance(selected, dict):
        raise ConfigError(f"profile '{name}' in {path} must be a mapping")
    return dict(selected)


def build_config(
    overrides: Optional[Mapping[str, Any]] = None,
    *,
    config_path: Optional[Path] = None,
    profile: Optional[str] = None,
) -> ClientConfig:
    config = ClientConfig()
    if config_path is not None:
        config.apply(load_profile(config_path, profile))
    elif profile not in (None, DEFAULT_PROFILE):
        raise ConfigError(f"profile '{profile}' requested without a configuration file")
    if overrides:
        config.apply({key: value for key, value in overrides.items() if value is not None})
    return config.validate()
