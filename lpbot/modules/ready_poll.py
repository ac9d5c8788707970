"""Ready polls: react when ready, the poll owner starts a countdown."""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional

import structlog

from ..commands import BotCommand, CommandContext, CommandResponse, CommandTable, option
from ..completion import CompletionChain
from ..exceptions import CommandError
from ..registry import Module, ModuleRegistry
from ..transport import OutgoingMessage, Transport

logger = structlog.get_logger("lpbot.modules")

YES = "<:FeelsGoodCrab:988509541069127780>"
NO = "<:FeelsBadCrab:988508541499342918>"
START = "<a:CrabRave:988508208240922635>"
COUNT = "🦀"
GO = "<a:CrabRave:988508208240922635>"

# Oldest polls are forgotten beyond this
MAX_POLLS = 20


@dataclass
class PendingPoll:
    message_id: int
    channel_id: int
    owner_id: int
    count_emote: Optional[str] = None
    go_emote: Optional[str] = None
    ready: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class ReactionEvent:
    """A reaction added to or removed from a message."""
    message_id: int
    channel_id: int
    user_id: int
    emoji: str
    added: bool = True


def build_message(ready: List[str]) -> str:
    """Poll text listing who is ready."""
    if not ready:
        return "Ready?"
    verb = "is" if len(ready) == 1 else "are"
    return f"Ready? ({', '.join(ready)} {verb} ready)"


class ReadyPoll(BotCommand):
    NAME = "ready_poll"
    DESCRIPTION = "Poll to start a listening party"

    count_emote: Optional[str] = option(None, description="Count emote")
    go_emote: Optional[str] = option(None, description="Emote Go")

    async def run(self, ctx: CommandContext) -> CommandResponse:
        channel_id = ctx.interaction.channel_id
        if channel_id is None:
            raise CommandError("Must be run in a channel", command=self.NAME)
        module = ctx.modules.get(ModPoll)

        await ctx.responder.respond(OutgoingMessage(content="Ready?"))
        message_id = await ctx.responder.original_response_id()
        await module.add_poll(
            PendingPoll(
                message_id=message_id,
                channel_id=channel_id,
                owner_id=ctx.interaction.user.id,
                count_emote=self.count_emote,
                go_emote=self.go_emote,
            )
        )
        await ctx.responder.add_reactions(message_id, [module.yes, module.no, module.start])
        return CommandResponse.none()


class ModPoll(Module):
    """Tracks pending ready polls and runs countdowns.

    Args:
        yes, no, start, count, go: Emotes used by the polls.
    """

    def __init__(
        self,
        yes: str = YES,
        no: str = NO,
        start: str = START,
        count: str = COUNT,
        go: str = GO,
    ):
        self.yes = yes
        self.no = no
        self.start = start
        self.count = count
        self.go = go
        # Seconds between countdown messages
        self.countdown_interval = 1.0
        self._polls: Deque[PendingPoll] = deque()
        self._lock = asyncio.Lock()

    @classmethod
    async def construct(cls, modules: ModuleRegistry) -> "ModPoll":
        emotes = modules.config.ready_poll_emotes if modules.config is not None else {}
        return cls(**emotes)

    def register(self, commands: CommandTable, completions: CompletionChain) -> None:
        commands.register(ReadyPoll)

    async def add_poll(self, poll: PendingPoll) -> None:
        async with self._lock:
            while len(self._polls) >= MAX_POLLS:
                self._polls.pop()
            self._polls.appendleft(poll)

    async def pending(self) -> List[PendingPoll]:
        async with self._lock:
            return list(self._polls)

    def _find(self, message_id: int) -> Optional[PendingPoll]:
        for poll in self._polls:
            if poll.message_id == message_id:
                return poll
        return None

    async def handle_reaction(
        self, transport: Transport, event: ReactionEvent, self_id: Optional[int] = None
    ) -> None:
        """Update the ready list or start the countdown.

        Reactions on messages that are not pending polls, and the bot's
        own reactions, are ignored.
        """
        if event.user_id == self_id:
            return

        async with self._lock:
            poll = self._find(event.message_id)
            if poll is None:
                return
            if event.emoji == self.yes:
                if event.added and event.user_id not in poll.ready:
                    poll.ready.append(event.user_id)
                elif not event.added and event.user_id in poll.ready:
                    poll.ready.remove(event.user_id)
                else:
                    return
                content = build_message([f"<@{uid}>" for uid in poll.ready])
                start = False
            elif event.added and event.emoji == self.start and event.user_id == poll.owner_id:
                self._polls.remove(poll)
                start = True
            else:
                return

        # Lock released before talking to the platform
        if start:
            logger.info("ready_poll_started", message=poll.message_id, ready=len(poll.ready))
            await self.countdown(transport, poll.channel_id, poll.count_emote, poll.go_emote)
        else:
            await transport.edit_channel_message(poll.channel_id, poll.message_id, content)

    async def countdown(
        self,
        transport: Transport,
        channel_id: int,
        count_emote: Optional[str] = None,
        go_emote: Optional[str] = None,
    ) -> None:
        count_emote = count_emote or self.count
        go_emote = go_emote or self.go
        await transport.send_channel_message(
            channel_id, OutgoingMessage(content="Starting 3s countdown")
        )
        await asyncio.sleep(2 * self.countdown_interval)
        for remaining in (3, 2, 1):
            await transport.send_channel_message(
                channel_id, OutgoingMessage(content=" ".join([count_emote] * remaining))
            )
            await asyncio.sleep(self.countdown_interval)
        await transport.send_channel_message(channel_id, OutgoingMessage(content=go_emote))
