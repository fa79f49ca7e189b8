"""
Configuration for geminipocket.

`RelaySettings` is read from the environment (and a `.env` file) once when
the relay starts. `ClientConfig` is the CLI's JSON config file. Both are
plain objects handed to the code that needs them.
"""
import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from . import __version__
from .provider import DEFAULT_BASE_URL, DEFAULT_IMAGE_MODEL, DEFAULT_VIDEO_MODEL

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:8787"
MIN_POLL_INTERVAL = 10


@dataclass
class RelaySettings:
    gemini_api_key: Optional[str] = None
    provider_base_url: str = DEFAULT_BASE_URL
    image_model: str = DEFAULT_IMAGE_MODEL
    video_model: str = DEFAULT_VIDEO_MODEL
    provider_timeout: int = 60
    user_db_url: Optional[str] = None
    user_store_path: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 8787
    version: str = __version__

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "RelaySettings":
        load_dotenv(dotenv_path=dotenv_path)
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            provider_base_url=os.getenv("GEMINI_PROVIDER_URL", DEFAULT_BASE_URL),
            image_model=os.getenv("GEMINI_IMAGE_MODEL", DEFAULT_IMAGE_MODEL),
            video_model=os.getenv("GEMINI_VIDEO_MODEL", DEFAULT_VIDEO_MODEL),
            provider_timeout=int(os.getenv("PROVIDER_TIMEOUT", "60")),
            user_db_url=os.getenv("USER_DB_URL") or None,
            user_store_path=os.getenv("USER_STORE_PATH") or None,
            host=os.getenv("RELAY_HOST", "0.0.0.0"),
            port=int(os.getenv("RELAY_PORT", "8787")),
        )


# keys users may change with `config set`
SETTABLE_KEYS = ("api_url", "output_dir", "api_key", "email", "provider_api_key",
                 "poll_interval", "poll_timeout", "max_polls")
_INT_KEYS = ("poll_interval", "max_polls")
_FLOAT_KEYS = ("poll_timeout",)


def _parse_poll_setting(key: str, value):
    """Convert a poll setting to its type and reject values the poll loop cannot use."""
    try:
        parsed = int(value) if key in _INT_KEYS else float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key} must be a number, got {value!r}") from exc
    if key == "poll_interval" and parsed < MIN_POLL_INTERVAL:
        raise ValueError(f"poll_interval must be at least {MIN_POLL_INTERVAL} seconds")
    if key == "max_polls" and parsed < 1:
        raise ValueError("max_polls must be at least 1")
    if key == "poll_timeout" and parsed <= 0:
        raise ValueError("poll_timeout must be greater than 0")
    return parsed


def default_config_path() -> Path:
    env_path = os.getenv("GEMINIPOCKET_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    base = os.getenv("XDG_CONFIG_HOME") or os.path.join(Path.home(), ".config")
    return Path(base) / "geminipocket" / "config.json"


@dataclass
class ClientConfig:
    api_url: Optional[str] = None
    output_dir: Optional[str] = None
    api_key: Optional[str] = None
    email: Optional[str] = None
    provider_api_key: Optional[str] = None
    poll_interval: int = MIN_POLL_INTERVAL
    poll_timeout: Optional[float] = None
    max_polls: Optional[int] = None
    path: Path = field(default_factory=default_config_path, repr=False, compare=False)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "ClientConfig":
        path = Path(path) if path else default_config_path()
        if not path.exists():
            return cls(path=path)
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except ValueError as exc:
            raise ValueError(f"Failed to parse config file {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError(f"Failed to parse config file {path}: expected a JSON object")
        known = {f.name for f in fields(cls)} - {"path"}
        unknown = set(data) - known
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", sorted(unknown))
        values = {k: v for k, v in data.items() if k in known}
        for key in _INT_KEYS + _FLOAT_KEYS:
            if values.get(key) is not None:
                try:
                    values[key] = _parse_poll_setting(key, values[key])
                except ValueError as exc:
                    raise ValueError(f"Invalid value in config file {path}: {exc}") from exc
        return cls(path=path, **values)

    def save(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {k: v for k, v in asdict(self).items() if k != "path" and v is not None}
        with open(self.path, "w") as f:
            json.dump(data, f, indent=2)
        try:
            os.chmod(self.path, 0o600)
        except OSError:
            logger.debug("Could not restrict permissions on %s", self.path)

    def set(self, key: str, value: str):
        if key not in SETTABLE_KEYS:
            raise KeyError(f"Unknown config key: {key}")
        if key in _INT_KEYS or key in _FLOAT_KEYS:
            setattr(self, key, _parse_poll_setting(key, value))
        elif key == "output_dir":
            setattr(self, key, str(Path(value).expanduser()))
        else:
            setattr(self, key, value)

    def get(self, key: str) -> Optional[str]:
        if key not in SETTABLE_KEYS:
            return None
        value = getattr(self, key)
        return None if value is None else str(value)

    def resolve_api_url(self, override: Optional[str] = None) -> str:
        return override or os.getenv("GEMINI_API_URL") or self.api_url or DEFAULT_API_URL

    def resolve_provider_key(self) -> Optional[str]:
        return self.provider_api_key or os.getenv("GEMINI_API_KEY") or None
