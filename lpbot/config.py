"""Configuration management for lpbot.

Loads YAML settings (settings.yaml) and environment variables (.env)
into a typed Config object. Property getters provide safe access with
defaults for every subsystem: Discord credentials, the command scope
community, the database, Last.fm, enabled modules, ready-poll emotes
and logging.

Key classes:
    Config: Central configuration manager.

Key functions:
    get_config: Singleton accessor for the global Config instance.
"""

import os
import re
from pathlib import Path
from typing import Dict, List, Optional

import structlog
import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = structlog.get_logger("lpbot.bot")

# Module names in default build order
DEFAULT_MODULES = ("lp", "quotes", "ready_poll", "birthdays", "autoreact", "relative")

# Settings that are read from the environment and must never be logged
_ENV_SETTINGS = {
    "discord_token": "DISCORD_TOKEN",
    "application_id": "APPLICATION_ID",
    "lastfm_api_key": "LFM_API_KEY",
}

_SNOWFLAKE = re.compile(r"^\d{15,21}$")

_REPO_ROOT = Path(__file__).parent.parent


def _repo_path(configured) -> Path:
    """Expand a configured path; relative ones are taken from the repo root."""
    path = Path(configured).expanduser()
    if not path.is_absolute():
        path = _REPO_ROOT / path
    return path


class Config:
    """Central configuration manager for lpbot.

    Loads settings.yaml and .env from the config directory. Read-only
    after __init__.

    Args:
        config_dir: Path to the config directory. Defaults to
            ``<repo_root>/config/``.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        if config_dir is None:
            config_dir = _REPO_ROOT / "config"
        self.config_dir = config_dir

        env_file = config_dir / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        self.settings = self._load_yaml("settings.yaml")

    def _load_yaml(self, filename: str) -> dict:
        """Load a YAML configuration file."""
        filepath = self.config_dir / filename
        if filepath.exists():
            with open(filepath, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        return {}

    def require(self, name: str):
        """Return a configured value or raise ConfigurationError.

        Used by modules whose construction cannot proceed without a
        credential, which aborts startup.

        Args:
            name: Property name on this Config (e.g. "lastfm_api_key").
        """
        value = getattr(self, name)
        if value in (None, ""):
            env_name = _ENV_SETTINGS.get(name)
            hint = f" (set {env_name} in the environment)" if env_name else ""
            raise ConfigurationError(f"Missing setting {name}{hint}", setting_name=name)
        return value

    def validate(self):
        """Validate critical settings at startup.

        Logs warnings/errors but does not raise; modules that need a
        missing value fail on their own during construction.
        """
        if not self.discord_token:
            logger.error("missing_discord_token", env="DISCORD_TOKEN")
        raw_guild = os.environ.get("GUILD_ID") or self.settings.get("guild_id")
        if raw_guild is not None and not _SNOWFLAKE.match(str(raw_guild)):
            logger.error("config_invalid_value", key="guild_id", value=str(raw_guild))
        elif raw_guild is None:
            logger.warning(
                "no_guild_id",
                msg="Community-scoped commands will be registered globally",
            )

        modules = self.settings.get("modules")
        if modules is not None and not isinstance(modules, list):
            logger.error("modules_invalid_type", type=type(modules).__name__)

        unknown = [m for m in self.enabled_modules if m not in DEFAULT_MODULES]
        if unknown:
            logger.warning("unknown_modules_configured", modules=unknown)

    # --- Discord ---

    @property
    def discord_token(self) -> str:
        """Bot token, from DISCORD_TOKEN only."""
        return os.environ.get("DISCORD_TOKEN", "")

    @property
    def application_id(self) -> Optional[int]:
        """Application id, from APPLICATION_ID. None lets discord.py look it up."""
        raw = os.environ.get("APPLICATION_ID")
        if raw and raw.isdigit():
            return int(raw)
        return None

    @property
    def guild_id(self) -> Optional[int]:
        """Community that receives scope-restricted commands.

        Env var GUILD_ID takes precedence over settings.yaml ``guild_id``.
        """
        raw = os.environ.get("GUILD_ID") or self.settings.get("guild_id")
        if raw is None:
            return None
        raw = str(raw)
        return int(raw) if raw.isdigit() else None

    # --- Storage ---

    @property
    def database_path(self) -> Path:
        """SQLite database file (default ``<repo_root>/data/lpbot.db``)."""
        configured = self.settings.get("database_path")
        if configured:
            return _repo_path(configured)
        return _REPO_ROOT / "data" / "lpbot.db"

    # --- External services ---

    @property
    def lastfm_api_key(self) -> str:
        """Last.fm API key from LFM_API_KEY."""
        return os.environ.get("LFM_API_KEY", "")

    @property
    def lastfm_timeout(self) -> float:
        """Total timeout in seconds for a Last.fm request (default 10)."""
        lastfm_config = self.settings.get("lastfm", {})
        return float(lastfm_config.get("timeout", 10))

    # --- Modules ---

    @property
    def enabled_modules(self) -> List[str]:
        """Module names to build, in order (default: every module)."""
        modules = self.settings.get("modules")
        if not isinstance(modules, list):
            return list(DEFAULT_MODULES)
        return [str(m) for m in modules]

    @property
    def ready_poll_emotes(self) -> Dict[str, str]:
        """Emote overrides for ready polls (keys: yes, no, start, count, go)."""
        poll_config = self.settings.get("ready_poll", {})
        if not isinstance(poll_config, dict):
            return {}
        return {
            k: str(v) for k, v in poll_config.items()
            if k in ("yes", "no", "start", "count", "go") and v
        }

    # --- Logging ---

    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        configured = self.settings.get("log_dir")
        if configured:
            return _repo_path(configured)
        return _REPO_ROOT / "logs"

    @property
    def logging_level(self) -> str:
        """Global log level (default INFO). Controls console and combined file."""
        log_config = self.settings.get("logging", {})
        return log_config.get("level", "INFO")

    @property
    def logging_subsystem_levels(self) -> dict:
        """Per-subsystem log level overrides. E.g. {"commands": "DEBUG"}."""
        log_config = self.settings.get("logging", {})
        return log_config.get("subsystem_levels", {})

    @property
    def logging_max_file_size_mb(self) -> int:
        """Max size per log file in MB before rotation (default 10)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("max_file_size_mb", 10)

    @property
    def logging_backup_count(self) -> int:
        """Number of rotated log files to keep (default 5)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("backup_count", 5)


_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config
