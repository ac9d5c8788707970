"""Decoded inbound interactions.

The chat platform delivers every slash command, context-menu click and
autocomplete request as an interaction payload. This module turns the
JSON payload into frozen dataclasses so the dispatcher, commands and
completion resolvers never touch the raw wire format.

Key classes:
    Interaction: One inbound user-triggered event.
    InteractionKind: Platform interaction type (command, autocomplete...).
    CommandKind: How a command is invoked (chat input or context menu).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional, Tuple

from .exceptions import CommandError


class InteractionKind(IntEnum):
    """Interaction type values used by the platform."""
    PING = 1
    APPLICATION_COMMAND = 2
    MESSAGE_COMPONENT = 3
    AUTOCOMPLETE = 4
    MODAL_SUBMIT = 5


class CommandKind(IntEnum):
    """Application command type values used by the platform."""
    CHAT_INPUT = 1
    USER = 2
    MESSAGE = 3


class OptionType(IntEnum):
    """Application command option type values used by the platform."""
    STRING = 3
    INTEGER = 4
    BOOLEAN = 5
    USER = 6
    CHANNEL = 7
    ROLE = 8
    MENTIONABLE = 9
    NUMBER = 10


@dataclass(frozen=True)
class User:
    id: int
    name: str


@dataclass(frozen=True)
class OptionValue:
    """One option as typed by the user.

    During autocomplete ``value`` holds the partial text and ``focused``
    marks the option currently being edited.
    """
    name: str
    type: int
    value: Any = None
    focused: bool = False


def _snowflake(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


@dataclass(frozen=True)
class Interaction:
    """One inbound interaction, decoded from the platform payload.

    Attributes:
        id: Interaction id.
        kind: Interaction type.
        command_name: Invoked command name (empty for components).
        command_kind: Chat input, user or message context menu.
        user: Invoking user.
        guild_id: Community the interaction came from (None in DMs).
        guild_name: Community name when the transport knows it.
        channel_id: Channel the interaction came from.
        options: Flattened options in the order they were sent.
        target_id: Target of a context-menu command.
        resolved: Resolved users/roles/messages keyed by id.
        raw: The transport's own interaction object (opaque to the core).
    """

    id: int
    kind: InteractionKind
    command_name: str
    command_kind: CommandKind
    user: User
    guild_id: Optional[int] = None
    guild_name: Optional[str] = None
    channel_id: Optional[int] = None
    options: Tuple[OptionValue, ...] = ()
    target_id: Optional[int] = None
    resolved: Dict[str, Any] = field(default_factory=dict)
    raw: Any = field(default=None, compare=False, repr=False)

    @classmethod
    def from_payload(
        cls,
        payload: Dict[str, Any],
        *,
        guild_name: Optional[str] = None,
        raw: Any = None,
    ) -> "Interaction":
        """Decode an interaction payload.

        Guild interactions carry the invoker under ``member.user``, DM
        interactions under ``user``. Subcommand options are flattened so
        that ``option_value`` finds leaf options by name.
        """
        data = payload.get("data") or {}
        user_data = (payload.get("member") or {}).get("user") or payload.get("user") or {}
        user = User(
            id=int(user_data.get("id", 0)),
            name=user_data.get("global_name") or user_data.get("username", ""),
        )
        try:
            kind = InteractionKind(int(payload.get("type", 0)))
        except ValueError:
            kind = InteractionKind.PING
        return cls(
            id=int(payload["id"]),
            kind=kind,
            command_name=data.get("name", ""),
            command_kind=CommandKind(int(data.get("type", CommandKind.CHAT_INPUT))),
            user=user,
            guild_id=_snowflake(payload.get("guild_id")),
            guild_name=guild_name,
            channel_id=_snowflake(payload.get("channel_id")),
            options=tuple(_flatten_options(data.get("options") or [])),
            target_id=_snowflake(data.get("target_id")),
            resolved=dict(data.get("resolved") or {}),
            raw=raw,
        )

    @property
    def is_autocomplete(self) -> bool:
        return self.kind == InteractionKind.AUTOCOMPLETE

    @property
    def is_command(self) -> bool:
        return self.kind == InteractionKind.APPLICATION_COMMAND

    def option(self, name: str) -> Optional[OptionValue]:
        for opt in self.options:
            if opt.name == name:
                return opt
        return None

    def option_value(self, name: str, default: Any = None) -> Any:
        opt = self.option(name)
        if opt is None or opt.value is None:
            return default
        return opt.value

    def option_values(self) -> Dict[str, Any]:
        """All non-null option values by name."""
        return {opt.name: opt.value for opt in self.options if opt.value is not None}

    def focused_option(self) -> Optional[str]:
        """Name of the option being autocompleted, if any."""
        for opt in self.options:
            if opt.focused:
                return opt.name
        return None

    def require_guild(self) -> int:
        """Return the guild id or fail the command with a user-facing error."""
        if self.guild_id is None:
            raise CommandError("Must be run in a server", command=self.command_name)
        return self.guild_id

    def target_message(self) -> Optional[Dict[str, Any]]:
        """Resolved message of a message context-menu command."""
        if self.target_id is None:
            return None
        messages = self.resolved.get("messages") or {}
        return messages.get(str(self.target_id))

    def format_options(self) -> str:
        """Render options for log lines, e.g. ``album: 'x' time: None``."""
        return " ".join(f"{opt.name}: {opt.value!r}" for opt in self.options)


def _flatten_options(options):
    for opt in options:
        nested = opt.get("options")
        if nested is not None:
            # Subcommand or subcommand group
            yield from _flatten_options(nested)
            continue
        yield OptionValue(
            name=opt.get("name", ""),
            type=int(opt.get("type", OptionType.STRING)),
            value=opt.get("value"),
            focused=bool(opt.get("focused", False)),
        )
