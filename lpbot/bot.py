"""discord.py adapter.

DiscordTransport implements the Transport protocol on top of a
discord.py client, and LPBot is the client itself: it converts every
gateway interaction into an ``Interaction`` and hands it to the
Dispatcher, registers command definitions before connecting, and
forwards reaction and message events to the modules that use them.

Key classes:
    DiscordTransport: Transport protocol over discord.py.
    LPBot: discord.Client subclass wiring events to the core.
"""

import io
from typing import Any, Dict, Optional, Sequence

import discord
import structlog
from discord import app_commands

from .config import Config
from .dispatcher import Dispatcher
from .interaction import Interaction
from .modules.autoreact import ModAutoreact
from .modules.ready_poll import ModPoll, ReactionEvent
from .registry import BotState
from .transport import Choice, OutgoingMessage

logger = structlog.get_logger("lpbot.bot")


def _message_kwargs(message: OutgoingMessage) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {
        "allowed_mentions": discord.AllowedMentions(
            everyone=False,
            users=False,
            roles=[discord.Object(id=role_id) for role_id in message.mention_roles],
        ),
    }
    if message.content:
        kwargs["content"] = message.content
    if message.embeds:
        kwargs["embeds"] = [discord.Embed.from_dict(e) for e in message.embeds]
    if message.attachments:
        kwargs["files"] = [
            discord.File(io.BytesIO(a.data), filename=a.filename) for a in message.attachments
        ]
    return kwargs


def convert_interaction(interaction: discord.Interaction) -> Interaction:
    """Decode a discord.py interaction into the core representation."""
    user = interaction.user
    payload = {
        "id": interaction.id,
        "type": interaction.type.value,
        "data": interaction.data or {},
        "guild_id": interaction.guild_id,
        "channel_id": interaction.channel_id,
        "user": {
            "id": user.id,
            "username": user.name,
            "global_name": getattr(user, "global_name", None),
        },
    }
    guild_name = interaction.guild.name if interaction.guild is not None else None
    return Interaction.from_payload(payload, guild_name=guild_name, raw=interaction)


class DiscordTransport:
    """Transport over a discord.py client.

    Args:
        client: Connected (or connecting) discord.py client.
    """

    def __init__(self, client: discord.Client):
        self.client = client

    async def send_response(self, interaction: Interaction, message: OutgoingMessage) -> None:
        raw: discord.Interaction = interaction.raw
        await raw.response.send_message(ephemeral=message.ephemeral, **_message_kwargs(message))

    async def defer(self, interaction: Interaction, ephemeral: bool = False) -> None:
        raw: discord.Interaction = interaction.raw
        await raw.response.defer(ephemeral=ephemeral, thinking=True)

    async def send_followup(
        self, interaction: Interaction, message: OutgoingMessage
    ) -> Optional[int]:
        raw: discord.Interaction = interaction.raw
        sent = await raw.followup.send(
            ephemeral=message.ephemeral, wait=True, **_message_kwargs(message)
        )
        return sent.id if sent is not None else None

    async def send_autocomplete(
        self, interaction: Interaction, choices: Sequence[Choice]
    ) -> None:
        raw: discord.Interaction = interaction.raw
        await raw.response.autocomplete(
            [app_commands.Choice(name=c.name, value=c.value) for c in choices]
        )

    async def original_response_id(self, interaction: Interaction) -> int:
        raw: discord.Interaction = interaction.raw
        message = await raw.original_response()
        return message.id

    async def delete_original_response(self, interaction: Interaction) -> None:
        raw: discord.Interaction = interaction.raw
        await raw.delete_original_response()

    async def add_reactions(
        self, channel_id: int, message_id: int, emotes: Sequence[str]
    ) -> None:
        message = self.client.get_partial_messageable(channel_id).get_partial_message(message_id)
        for emote in emotes:
            await message.add_reaction(emote)

    async def send_channel_message(self, channel_id: int, message: OutgoingMessage) -> int:
        channel = self.client.get_partial_messageable(channel_id)
        sent = await channel.send(**_message_kwargs(message))
        return sent.id

    async def edit_channel_message(self, channel_id: int, message_id: int, content: str) -> None:
        message = self.client.get_partial_messageable(channel_id).get_partial_message(message_id)
        await message.edit(content=content, allowed_mentions=discord.AllowedMentions.none())

    async def register_command(
        self, definition: Dict[str, Any], guild_id: Optional[int] = None
    ) -> None:
        application_id = self.client.application_id
        if application_id is None:
            raise RuntimeError("Application id unknown, cannot register commands")
        if guild_id is None:
            await self.client.http.upsert_global_command(application_id, definition)
        else:
            await self.client.http.upsert_guild_command(application_id, guild_id, definition)
        logger.debug("command_registered", command=definition.get("name"), guild=guild_id)


class LPBot(discord.Client):
    """Discord client driving the dispatcher.

    Args:
        state: Frozen modules and command tables.
        config: Loaded configuration.
    """

    def __init__(self, state: BotState, config: Config):
        intents = discord.Intents.default()
        intents.message_content = True
        intents.reactions = True
        super().__init__(intents=intents, application_id=config.application_id)
        self.config = config
        self.state = state
        self.transport = DiscordTransport(self)
        self.dispatcher = Dispatcher(state, self.transport)

    async def setup_hook(self) -> None:
        count = await self.dispatcher.register_commands()
        logger.info("setup_complete", commands=count)

    async def on_ready(self) -> None:
        logger.info(
            "bot_connected",
            user=str(self.user),
            guilds=len(self.guilds),
        )

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        try:
            converted = convert_interaction(interaction)
        except (KeyError, TypeError, ValueError) as e:
            logger.error("interaction_decode_failed", interaction=interaction.id, error=str(e))
            return
        await self.dispatcher.dispatch(converted)

    async def _forward_reaction(self, payload: discord.RawReactionActionEvent, added: bool) -> None:
        if ModPoll not in self.state.modules:
            return
        event = ReactionEvent(
            message_id=payload.message_id,
            channel_id=payload.channel_id,
            user_id=payload.user_id,
            emoji=str(payload.emoji),
            added=added,
        )
        self_id = self.user.id if self.user is not None else None
        try:
            await self.state.modules.get(ModPoll).handle_reaction(self.transport, event, self_id)
        except discord.HTTPException as e:
            logger.warning("ready_poll_reaction_failed", message=payload.message_id, error=str(e))

    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent) -> None:
        await self._forward_reaction(payload, added=True)

    async def on_raw_reaction_remove(self, payload: discord.RawReactionActionEvent) -> None:
        await self._forward_reaction(payload, added=False)

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or message.guild is None:
            return
        if ModAutoreact not in self.state.modules:
            return
        emotes = self.state.modules.get(ModAutoreact).reactions_for(
            message.guild.id, message.content
        )
        for emote in emotes:
            try:
                await message.add_reaction(emote)
            except discord.HTTPException as e:
                logger.warning("autoreact_failed", emote=emote, error=str(e))
