"""Command identity, descriptors and the command table.

Every command the bot exposes is described by an immutable
CommandDescriptor keyed by CommandKey (name plus invocation kind, so a
slash command and a message context-menu entry may share a name).
Modules insert descriptors into the shared CommandTable while the
registry is being built; the table is frozen before the first
interaction is dispatched.

Key classes:
    CommandKey: (name, kind) identity of a command.
    CommandDescriptor: Everything needed to register and run a command.
    CommandTable: Maps CommandKey to CommandDescriptor, last write wins.
    CommandResponse: Outcome of a command (no reply, public, private).
    CommandContext: What a running command can reach.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntFlag
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Type,
)

import structlog

from ..interaction import CommandKind
from ..transport import Attachment, OutgoingMessage

if TYPE_CHECKING:
    from ..interaction import Interaction
    from ..registry import ModuleRegistry
    from ..transport import Responder
    from .options import BotCommand

logger = structlog.get_logger("lpbot.commands")


class Permissions(IntFlag):
    """Member permission bits used as default command permissions."""
    ADMINISTRATOR = 1 << 3
    MANAGE_GUILD = 1 << 5
    MANAGE_MESSAGES = 1 << 13
    MANAGE_ROLES = 1 << 28
    MANAGE_WEBHOOKS = 1 << 29
    MANAGE_EMOJIS_AND_STICKERS = 1 << 30
    MANAGE_THREADS = 1 << 34


@dataclass(frozen=True)
class CommandKey:
    name: str
    kind: CommandKind = CommandKind.CHAT_INPUT

    def __str__(self) -> str:
        if self.kind == CommandKind.CHAT_INPUT:
            return f"/{self.name}"
        return f"{self.name} ({self.kind.name.lower()})"


class Visibility(str, Enum):
    NONE = "none"
    PUBLIC = "public"
    PRIVATE = "private"


@dataclass(frozen=True)
class CommandResponse:
    """What a command asks the dispatcher to send.

    ``NONE`` means the command already produced its visible effect (for
    example it responded itself, or deferred and followed up) and the
    dispatcher must send nothing more.
    """

    visibility: Visibility = Visibility.NONE
    content: str = ""
    embeds: List[Dict[str, Any]] = field(default_factory=list)
    attachments: List[Attachment] = field(default_factory=list)
    mention_roles: List[int] = field(default_factory=list)

    @classmethod
    def none(cls) -> "CommandResponse":
        return cls()

    @classmethod
    def public(
        cls,
        content: str = "",
        *,
        embeds: Optional[List[Dict[str, Any]]] = None,
        attachments: Optional[List[Attachment]] = None,
        mention_roles: Optional[List[int]] = None,
    ) -> "CommandResponse":
        return cls(
            Visibility.PUBLIC,
            content,
            list(embeds or []),
            list(attachments or []),
            list(mention_roles or []),
        )

    @classmethod
    def private(
        cls,
        content: str = "",
        *,
        embeds: Optional[List[Dict[str, Any]]] = None,
        attachments: Optional[List[Attachment]] = None,
    ) -> "CommandResponse":
        return cls(Visibility.PRIVATE, content, list(embeds or []), list(attachments or []))

    def to_message(self) -> Optional[OutgoingMessage]:
        """Build the outgoing message, or None for a no-reply outcome."""
        if self.visibility == Visibility.NONE:
            return None
        return OutgoingMessage(
            content=self.content,
            ephemeral=self.visibility == Visibility.PRIVATE,
            embeds=list(self.embeds),
            attachments=list(self.attachments),
            mention_roles=list(self.mention_roles),
        )


@dataclass
class CommandContext:
    """Handles passed to a running command.

    Attributes:
        modules: The frozen module registry.
        responder: Reply handle for this interaction.
        interaction: The decoded interaction.
    """

    modules: "ModuleRegistry"
    responder: "Responder"
    interaction: "Interaction"

    @property
    def transport(self):
        return self.responder.transport


Decoder = Callable[["Interaction"], Any]
Executor = Callable[[Any, CommandContext], Awaitable[CommandResponse]]


@dataclass(frozen=True)
class CommandDescriptor:
    """Registration record binding a CommandKey to its schema and logic.

    Attributes:
        key: Command identity.
        description: Help text shown by the platform (chat input only).
        guild_id: Community the command is restricted to, None for global.
        permissions: Default member permissions required, if any.
        build_options: Returns the option definitions for registration.
        decode: Turns an interaction into the typed argument object.
        execute: Runs the command with decoded arguments.
    """

    key: CommandKey
    description: str
    execute: Executor
    decode: Decoder
    build_options: Callable[[], List[Dict[str, Any]]] = list
    guild_id: Optional[int] = None
    permissions: Optional[Permissions] = None

    @classmethod
    def from_command(
        cls, command_cls: Type["BotCommand"], guild_id: Optional[int] = None
    ) -> "CommandDescriptor":
        """Describe a BotCommand subclass."""
        return cls(
            key=command_cls.key(),
            description=command_cls.DESCRIPTION,
            execute=command_cls.run,
            decode=command_cls.from_interaction,
            build_options=command_cls.build_options,
            guild_id=guild_id,
            permissions=command_cls.PERMISSIONS,
        )

    @property
    def is_scoped(self) -> bool:
        return self.guild_id is not None

    def definition(self) -> Dict[str, Any]:
        """Platform command definition used for registration."""
        payload: Dict[str, Any] = {"name": self.key.name, "type": int(self.key.kind)}
        # Context-menu commands carry neither description nor options
        if self.key.kind == CommandKind.CHAT_INPUT:
            payload["description"] = self.description
            payload["options"] = self.build_options()
        if self.permissions is not None:
            payload["default_member_permissions"] = str(int(self.permissions))
        return payload


class CommandTable:
    """Maps command keys to descriptors.

    Inserting under an existing key replaces the earlier descriptor
    (last write wins). The replacement is logged because it usually
    means two modules picked the same command name.
    """

    def __init__(self):
        self._commands: Dict[CommandKey, CommandDescriptor] = {}
        self._frozen = False

    def insert(self, descriptor: CommandDescriptor) -> None:
        if self._frozen:
            raise RuntimeError(f"Command table is frozen, cannot add {descriptor.key}")
        previous = self._commands.pop(descriptor.key, None)
        if previous is not None:
            logger.warning("command_overwritten", command=str(descriptor.key))
        self._commands[descriptor.key] = descriptor

    def register(
        self, command_cls: Type["BotCommand"], guild_id: Optional[int] = None
    ) -> CommandDescriptor:
        """Insert the descriptor of a BotCommand subclass and return it."""
        descriptor = CommandDescriptor.from_command(command_cls, guild_id=guild_id)
        self.insert(descriptor)
        return descriptor

    def get(self, key: CommandKey) -> Optional[CommandDescriptor]:
        return self._commands.get(key)

    def all(self) -> Iterator[CommandDescriptor]:
        return iter(list(self._commands.values()))

    def global_commands(self) -> List[CommandDescriptor]:
        return [d for d in self._commands.values() if not d.is_scoped]

    def scoped_commands(self) -> List[CommandDescriptor]:
        return [d for d in self._commands.values() if d.is_scoped]

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, key: object) -> bool:
        return key in self._commands

    def __len__(self) -> int:
        return len(self._commands)
