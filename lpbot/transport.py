"""Outbound transport surface and per-interaction reply state.

The core never talks to the chat platform directly. Everything it needs
(answering, deferring, following up, suggesting, reacting, registering
command definitions) goes through the Transport protocol, which the
discord.py adapter in ``lpbot.bot`` implements and tests replace with a
recording fake.

Key classes:
    Transport: Protocol implemented by the platform adapter.
    Responder: Tracks whether one interaction has been acknowledged and
        refuses a second initial answer.
    OutgoingMessage: A fully built reply (text, embeds, attachments).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Sequence, Union

import structlog

from .exceptions import InteractionStateError

if TYPE_CHECKING:
    from .interaction import Interaction

logger = structlog.get_logger("lpbot.commands")

# Platform limits on autocomplete choice names, string values and result count
MAX_CHOICE_NAME = 100
MAX_CHOICE_VALUE = 100
MAX_CHOICES = 25


@dataclass(frozen=True)
class Attachment:
    filename: str
    data: bytes


@dataclass(frozen=True)
class Choice:
    """One autocomplete suggestion."""
    name: str
    value: Union[str, int, float]

    def __post_init__(self):
        if len(self.name) > MAX_CHOICE_NAME:
            object.__setattr__(self, "name", self.name[:MAX_CHOICE_NAME])
        if isinstance(self.value, str) and len(self.value) > MAX_CHOICE_VALUE:
            object.__setattr__(self, "value", self.value[:MAX_CHOICE_VALUE])


@dataclass(frozen=True)
class OutgoingMessage:
    """A reply ready for the transport.

    Attributes:
        content: Message text (may be empty when embeds are present).
        ephemeral: Visible only to the invoking user.
        embeds: Rich embeds, passed through verbatim as platform dicts.
        attachments: Files to upload with the message.
        mention_roles: Role ids allowed to be pinged by the content.
    """

    content: str = ""
    ephemeral: bool = False
    embeds: List[Dict[str, Any]] = field(default_factory=list)
    attachments: List[Attachment] = field(default_factory=list)
    mention_roles: List[int] = field(default_factory=list)


class Transport(Protocol):
    """Operations the core needs from the chat platform.

    ``interaction`` arguments are the decoded Interaction; adapters reach
    their own native object through ``interaction.raw``.
    """

    async def send_response(
        self, interaction: "Interaction", message: OutgoingMessage
    ) -> None: ...

    async def defer(self, interaction: "Interaction", ephemeral: bool = False) -> None: ...

    async def send_followup(
        self, interaction: "Interaction", message: OutgoingMessage
    ) -> Optional[int]: ...

    async def send_autocomplete(
        self, interaction: "Interaction", choices: Sequence[Choice]
    ) -> None: ...

    async def original_response_id(self, interaction: "Interaction") -> int: ...

    async def delete_original_response(self, interaction: "Interaction") -> None: ...

    async def add_reactions(
        self, channel_id: int, message_id: int, emotes: Sequence[str]
    ) -> None: ...

    async def send_channel_message(
        self, channel_id: int, message: OutgoingMessage
    ) -> int: ...

    async def edit_channel_message(
        self, channel_id: int, message_id: int, content: str
    ) -> None: ...

    async def register_command(
        self, definition: Dict[str, Any], guild_id: Optional[int] = None
    ) -> None: ...


class ReplyState(str, Enum):
    PENDING = "pending"
    DEFERRED = "deferred"
    RESPONDED = "responded"


class Responder:
    """Reply handle for a single interaction.

    The platform accepts exactly one initial answer (a response, a defer
    or a suggestion list). Everything after that must be a follow-up.
    Responder records which of those happened so that the dispatcher and
    the commands can pick the legal call, and raises InteractionStateError
    instead of issuing a second initial answer.

    Args:
        transport: Platform adapter.
        interaction: The interaction being answered.
    """

    def __init__(self, transport: Transport, interaction: "Interaction"):
        self.transport = transport
        self.interaction = interaction
        self.state = ReplyState.PENDING
        # A public defer leaves a placeholder that the next follow-up
        # fills, keeping the defer's visibility
        self.public_placeholder = False

    @property
    def acknowledged(self) -> bool:
        return self.state != ReplyState.PENDING

    def _ensure_pending(self, action: str) -> None:
        if self.state != ReplyState.PENDING:
            raise InteractionStateError(
                f"Cannot {action}: interaction already {self.state.value}",
                interaction=self.interaction.id,
            )

    async def respond(self, message: OutgoingMessage) -> None:
        """Send the initial response."""
        self._ensure_pending("respond")
        # Mark first so a failed send is not retried as a second answer
        self.state = ReplyState.RESPONDED
        await self.transport.send_response(self.interaction, message)

    async def defer(self, ephemeral: bool = False) -> None:
        """Acknowledge now and answer later with a follow-up.

        Deferring twice is a no-op; deferring after a response is an error.
        """
        if self.state == ReplyState.DEFERRED:
            return
        self._ensure_pending("defer")
        self.state = ReplyState.DEFERRED
        self.public_placeholder = not ephemeral
        await self.transport.defer(self.interaction, ephemeral=ephemeral)

    async def followup(self, message: OutgoingMessage) -> Optional[int]:
        """Send a follow-up message. Requires a prior acknowledgment."""
        if self.state == ReplyState.PENDING:
            raise InteractionStateError(
                "Cannot send a follow-up before acknowledging the interaction",
                interaction=self.interaction.id,
            )
        message_id = await self.transport.send_followup(self.interaction, message)
        self.public_placeholder = False
        return message_id

    async def send(self, message: OutgoingMessage) -> None:
        """Answer with whatever call is legal in the current state."""
        if self.state == ReplyState.PENDING:
            await self.respond(message)
        else:
            await self.followup(message)

    async def send_private(self, message: OutgoingMessage) -> None:
        """Answer so that only the invoking user sees ``message``.

        After a public defer the first follow-up would fill the public
        placeholder regardless of its own flag, so the placeholder is
        deleted first and the message goes out as a separate private
        follow-up.
        """
        message = replace(message, ephemeral=True)
        if self.public_placeholder:
            self.public_placeholder = False
            try:
                await self.transport.delete_original_response(self.interaction)
            except Exception as e:
                logger.warning(
                    "cannot_delete_placeholder",
                    interaction=self.interaction.id,
                    error=str(e),
                )
        await self.send(message)

    async def autocomplete(self, choices: Sequence[Choice]) -> None:
        """Answer an autocomplete request with up to 25 suggestions."""
        self._ensure_pending("send suggestions")
        self.state = ReplyState.RESPONDED
        await self.transport.send_autocomplete(self.interaction, list(choices)[:MAX_CHOICES])

    async def original_response_id(self) -> int:
        """Message id of the initial response (after ``respond``)."""
        return await self.transport.original_response_id(self.interaction)

    async def add_reactions(self, message_id: int, emotes: Sequence[str]) -> None:
        if self.interaction.channel_id is None:
            logger.warning("reactions_without_channel", interaction=self.interaction.id)
            return
        await self.transport.add_reactions(self.interaction.channel_id, message_id, emotes)
