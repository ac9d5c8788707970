"""Custom exception hierarchy for LPBot.

Provides precise error classification across the module registry, the
command dispatcher and the feature modules, so that startup wiring bugs,
user-facing command failures and downstream service errors can be told
apart at the point where they are handled.

Key functions:
    describe_error: Text shown to a user when a command fails.
"""

from enum import Enum
from typing import Any, List, Optional


class ErrorCategory(str, Enum):
    """Classification of errors for retry and escalation decisions."""
    TRANSIENT = "transient"          # Worth retrying (timeout, rate limit, db busy)
    PERMANENT = "permanent"          # Not worth retrying (bad input, unknown command)
    INFRASTRUCTURE = "infrastructure"  # Missing credential, unbuildable module


class LPBotError(Exception):
    """Base exception for all LPBot errors.

    Attributes:
        message: Human-readable error description.
        category: Error classification for retry/escalation decisions.
        module: Originating module name (e.g. "registry", "lp").
        context: Arbitrary key-value pairs for structured logging.
    """

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.message = message
        self.category = category
        self.module = module
        self.context = context
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether this error is worth retrying."""
        return self.category == ErrorCategory.TRANSIENT

    def __str__(self) -> str:
        parts = [self.message or self.__class__.__name__]
        if self.module:
            parts.append(f"[module={self.module}]")
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"({ctx})")
        return " ".join(parts)

    def __repr__(self) -> str:
        cls = self.__class__.__name__
        return (
            f"{cls}({self.message!r}, category={self.category.value!r}, "
            f"module={self.module!r})"
        )


def describe_error(exc: BaseException) -> str:
    """Return the text shown to the invoking user for a failed command.

    LPBotError subclasses show their bare message (without the logging
    decorations added by ``__str__``); anything else falls back to
    ``str(exc)``, or the exception class name when that is empty.
    """
    if isinstance(exc, LPBotError):
        text = exc.message
    else:
        text = str(exc)
    return text or exc.__class__.__name__


# ---------------------------------------------------------------------------
# Configuration exceptions
# ---------------------------------------------------------------------------

class ConfigurationError(LPBotError):
    """Invalid or missing configuration.

    Defaults to INFRASTRUCTURE because config issues are environmental
    and won't resolve by retrying.
    """

    def __init__(
        self,
        message: str = "",
        *,
        setting_name: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.setting_name = setting_name
        super().__init__(
            message, category=category, module=module or "config", **context
        )


# ---------------------------------------------------------------------------
# Module registry exceptions
# ---------------------------------------------------------------------------

class ModuleError(LPBotError):
    """Error raised by the module registry or its builder.

    Attributes:
        module_name: Class name of the module involved (if known).
    """

    def __init__(
        self,
        message: str = "",
        *,
        module_name: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.module_name = module_name
        super().__init__(
            message, category=category, module=module or "registry", **context
        )


class ModuleInitError(ModuleError):
    """A module failed to construct during startup."""


class ModuleNotRegisteredError(ModuleError):
    """A module was requested from the registry but never installed.

    This is a wiring bug rather than a runtime condition.
    """

    def __init__(
        self,
        message: str = "",
        *,
        module_name: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(
            message or f"Module {module_name} is not registered",
            module_name=module_name,
            category=category,
            module=module,
            **context,
        )


class CyclicDependencyError(ModuleError):
    """Module dependency declarations form a cycle.

    Attributes:
        cycle: Module class names along the cycle, first and last equal.
    """

    def __init__(
        self,
        message: str = "",
        *,
        cycle: Optional[List[str]] = None,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.cycle = list(cycle or [])
        super().__init__(
            message or "Cyclic module dependency: " + " -> ".join(self.cycle),
            module_name=self.cycle[0] if self.cycle else None,
            category=category,
            module=module,
            **context,
        )


# ---------------------------------------------------------------------------
# Command exceptions
# ---------------------------------------------------------------------------

class CommandError(LPBotError):
    """Error while running a command. Shown privately to the invoker.

    Attributes:
        command: Name of the command that failed (if known).
    """

    def __init__(
        self,
        message: str = "",
        *,
        command: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.command = command
        super().__init__(
            message, category=category, module=module or "commands", **context
        )


class UnknownCommandError(CommandError):
    """No descriptor is registered for the invoked command key."""

    def __init__(
        self,
        message: str = "",
        *,
        command: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(message or "Unknown command", command=command, **context)


class OptionError(CommandError):
    """Command arguments failed to decode (missing or mistyped option).

    Attributes:
        option: Name of the offending option (if a single one is known).
    """

    def __init__(
        self,
        message: str = "",
        *,
        option: Optional[str] = None,
        command: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.option = option
        super().__init__(message, command=command, **context)


class InteractionStateError(LPBotError):
    """An interaction was answered in a way the platform does not allow.

    Raised for a second initial response, a follow-up before any
    acknowledgment, or a defer after a response.
    """

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(
            message, category=category, module=module or "transport", **context
        )


# ---------------------------------------------------------------------------
# Database exceptions
# ---------------------------------------------------------------------------

class DatabaseError(LPBotError):
    """Error during database operations.

    Attributes:
        operation: The DB operation that failed (e.g. "insert", "query").
        table: The table involved (if known).
    """

    def __init__(
        self,
        message: str = "",
        *,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.operation = operation
        self.table = table
        super().__init__(
            message, category=category, module=module or "database", **context
        )


# ---------------------------------------------------------------------------
# External service exceptions
# ---------------------------------------------------------------------------

class ExternalServiceError(LPBotError):
    """A third-party API answered with an error or could not be reached.

    Attributes:
        service: Name of the service (e.g. "lastfm").
        status: HTTP status code (if any).
    """

    def __init__(
        self,
        message: str = "",
        *,
        service: Optional[str] = None,
        status: Optional[int] = None,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.service = service
        self.status = status
        super().__init__(
            message, category=category, module=module or service, **context
        )
