"""Logging configuration for lpbot.

Provides subsystem-level log file routing, secret sanitization,
and structlog + stdlib integration.

Subsystem hierarchy (stdlib dotted names, structlog wraps them):
    root              → ConsoleHandler (terminal)
      └─ lpbot        → RotatingFileHandler → lpbot.log (combined)
           ├─ lpbot.bot        → RFH → bot.log
           ├─ lpbot.modules    → RFH → modules.log
           ├─ lpbot.commands   → RFH → commands.log
           └─ lpbot.database   → RFH → database.log
"""

import logging
import logging.handlers
import re
import sys
from pathlib import Path
from typing import Any, Dict

import structlog

# Subsystem names, each gets its own RotatingFileHandler
SUBSYSTEMS = ("bot", "modules", "commands", "database")

# stdlib logger name prefix for hierarchy-based propagation
LOGGER_PREFIX = "lpbot"

# ---------------------------------------------------------------------------
# Secret sanitization
# ---------------------------------------------------------------------------

_SECRET_PATTERNS = [
    # Discord bot tokens (base64 user id . timestamp . hmac)
    re.compile(r"[A-Za-z0-9_-]{23,28}\.[A-Za-z0-9_-]{6,7}\.[A-Za-z0-9_-]{27,}"),
    # Authorization header values
    re.compile(r"(?:Bot|Bearer)\s+[A-Za-z0-9_.-]{20,}"),
    # Last.fm api_key query parameter
    re.compile(r"api_key=[0-9a-fA-F]{32}"),
]

_REDACTED = "***REDACTED***"


def _scrub_value(value: str) -> str:
    """Scrub secrets from a single string value."""
    for pattern in _SECRET_PATTERNS:
        value = pattern.sub(_REDACTED, value)
    return value


def sanitize_secrets(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """structlog processor that scrubs tokens and API keys.

    Walks all string values in the event dict (including one level of
    list/tuple/dict nesting) and replaces matches with a redacted
    placeholder. Error strings from HTTP clients often echo the request
    URL, which is where the Last.fm key lives.
    """
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = _scrub_value(value)
        elif isinstance(value, (list, tuple)):
            event_dict[key] = type(value)(
                _scrub_value(v) if isinstance(v, str) else v
                for v in value
            )
        elif isinstance(value, dict):
            event_dict[key] = {
                k: _scrub_value(v) if isinstance(v, str) else v
                for k, v in value.items()
            }
    return event_dict


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(config=None) -> None:
    """Configure structured logging with subsystem file handlers.

    Sets up:
    1. Root logger: ConsoleHandler
    2. "lpbot" logger: RotatingFileHandler → logs/lpbot.log
    3. "lpbot.<subsystem>" loggers: individual RotatingFileHandlers

    All subsystem loggers propagate up the hierarchy, so every event
    appears in: its subsystem file + combined lpbot.log + console.

    Args:
        config: Optional Config instance. First call (before config loads)
                uses defaults with cache_logger_on_first_use=False.
                Second call (after config loads) uses real config and sets
                cache_logger_on_first_use=True.
    """
    if config is not None:
        log_dir = config.log_dir
        root_level_name = config.logging_level.upper()
        subsystem_levels = config.logging_subsystem_levels
        max_bytes = config.logging_max_file_size_mb * 1024 * 1024
        backup_count = config.logging_backup_count
        cache_loggers = True
    else:
        log_dir = Path(__file__).parent.parent / "logs"
        root_level_name = "INFO"
        subsystem_levels = {}
        max_bytes = 10 * 1024 * 1024  # 10 MB
        backup_count = 5
        cache_loggers = False

    root_level = getattr(logging, root_level_name, logging.INFO)

    file_handlers_ok = False
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handlers_ok = True
    except OSError as exc:
        # Fall back to console-only, the bot must not crash on logging failure
        print(
            f"WARNING: Cannot create log directory {log_dir}: {exc}. "
            "Falling back to console-only logging.",
            file=sys.stderr,
        )

    # Shared formatter for file output (structured, no ANSI colors)
    file_formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
    )

    # 1. Root logger: console only
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Handlers filter by level
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(root_level)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    )
    root_logger.addHandler(console_handler)

    # discord.py is chatty at DEBUG (gateway payloads)
    logging.getLogger("discord").setLevel(max(root_level, logging.INFO))

    def attach(name: str, filename: str, level: int, logger_level: int) -> None:
        target = logging.getLogger(name)
        target.setLevel(logger_level)
        target.handlers.clear()
        target.propagate = True
        if not file_handlers_ok:
            return
        handler = logging.handlers.RotatingFileHandler(
            log_dir / filename,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        handler.setLevel(level)
        handler.setFormatter(file_formatter)
        target.addHandler(handler)

    # 2. "lpbot" parent logger: combined log file
    attach(LOGGER_PREFIX, "lpbot.log", root_level, logging.DEBUG)

    # 3. Per-subsystem loggers: individual log files
    for subsystem in SUBSYSTEMS:
        level_name = subsystem_levels.get(subsystem, "").upper()
        level = getattr(logging, level_name, root_level) if level_name else root_level
        attach(f"{LOGGER_PREFIX}.{subsystem}", f"{subsystem}.log", level, level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            sanitize_secrets,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=cache_loggers,
    )
