"""Listening parties: /lp and /setrole."""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import structlog

from ..commands import (
    BotCommand,
    CommandContext,
    CommandKey,
    CommandResponse,
    CommandTable,
    Permissions,
    RoleId,
    option,
)
from ..completion import CompletionChain
from ..exceptions import LPBotError
from ..interaction import CommandKind
from ..registry import Module, ModuleRegistry
from ..transport import MAX_CHOICE_VALUE, Choice
from .database import Database
from .lastfm import Lastfm

logger = structlog.get_logger("lpbot.modules")

# XX:15, xx15 or 15
_XX_TIME = re.compile(r"(?i)^(XX:?)?([0-5][0-9])$")
# +25, 25m, +5m
_PLUS_TIME = re.compile(r"^\+?([0-5]?[0-9])m?$")


def convert_lp_time(time: Optional[str], now: Optional[datetime] = None) -> str:
    """Render the LP start time for the announcement.

    ``None`` and ``"now"`` give ``"now"``. ``XX:MM`` (or ``MM``) is the
    next time the clock shows that minute, ``+N`` is N minutes from now;
    both render as platform timestamps. Anything else is used verbatim.
    """
    if time is None or time == "now":
        return "now"
    if now is None:
        now = datetime.now(timezone.utc)

    xx = _XX_TIME.match(time)
    plus = _PLUS_TIME.match(time)
    if xx:
        minute = int(xx.group(2))
        if now.minute <= minute:
            to_add = minute - now.minute
        else:
            to_add = 60 - now.minute + minute
        lp_time = now + timedelta(minutes=to_add)
    elif plus:
        lp_time = now + timedelta(minutes=int(plus.group(1)))
    else:
        return time

    ts = int(lp_time.timestamp())
    return f"at <t:{ts}:t> (<t:{ts}:R>)"


def split_album_link(album: str, link: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Use an album given as a URL as the link.

    When both are URLs and differ, the name is dropped and the explicit
    link is kept.
    """
    if not album.startswith("https://"):
        return album, link
    if link is not None and link != album:
        return None, link
    return None, album


def build_lp_message(
    name: str,
    when: str,
    role_id: Optional[int] = None,
    genres: Optional[list] = None,
    link: Optional[str] = None,
) -> str:
    header = f"<@&{role_id}>" if role_id else "Listening party:"
    lines = [f"{header} {name} {when}"]
    if genres:
        lines.append(", ".join(genres))
    if link:
        lines.append(link)
    return "\n".join(lines)


class Lp(BotCommand):
    NAME = "lp"
    DESCRIPTION = "run a listening party"

    album: str = option(
        description="What you will be listening to (e.g. band - album, or a link)",
        autocomplete=True,
    )
    link: Optional[str] = option(
        None,
        description="(Optional) Link to the album/playlist (Spotify, Youtube, Bandcamp...)",
        autocomplete=True,
    )
    time: Optional[str] = option(
        None, description="Time at which the LP will take place (e.g. XX:20, +5)"
    )

    async def run(self, ctx: CommandContext) -> CommandResponse:
        guild_id = ctx.interaction.require_guild()
        lp_name, link = split_album_link(self.album, self.link)
        when = convert_lp_time(self.time)

        db = ctx.modules.get(Database)
        role_id = await db.get_guild_field(guild_id, "role_id")

        # Genre lookup can be slow
        await ctx.responder.defer()
        genres = None
        if lp_name and " - " in lp_name:
            artist = lp_name.split(" - ", 1)[0].strip()
            try:
                genres = await ctx.modules.get(Lastfm).artist_top_tags(artist)
            except LPBotError as e:
                logger.warning("lastfm_genres_failed", artist=artist, error=str(e))

        content = build_lp_message(lp_name or link or "", when, role_id, genres, link)
        return CommandResponse.public(
            content, mention_roles=[role_id] if role_id else None
        )


class SetLpRole(BotCommand):
    NAME = "setrole"
    DESCRIPTION = "set what role to ping for listening parties"
    PERMISSIONS = Permissions.MANAGE_ROLES

    role: Optional[RoleId] = option(None, description="Role to ping (leave unset to clear)")

    async def run(self, ctx: CommandContext) -> CommandResponse:
        guild_id = ctx.interaction.require_guild()
        await ctx.modules.get(Database).set_guild_field(guild_id, "role_id", self.role)
        if self.role is None:
            return CommandResponse.public("LP role removed")
        return CommandResponse.public(f"LP role changed to <@&{self.role}>")


class ModLp(Module):
    depends_on = (Database, Lastfm)

    @classmethod
    async def construct(cls, modules: ModuleRegistry) -> "ModLp":
        await modules.get(Database).add_guild_field("role_id", "INTEGER")
        return cls()

    def register(self, commands: CommandTable, completions: CompletionChain) -> None:
        commands.register(Lp)
        commands.register(SetLpRole)
        completions.push(self.complete_lp)

    async def complete_lp(self, ctx: CommandContext, key: CommandKey) -> bool:
        if key != CommandKey(Lp.NAME, CommandKind.CHAT_INPUT):
            return False
        interaction = ctx.interaction
        album = interaction.option_value("album") or ""
        focused = interaction.focused_option()
        choices = []
        if len(album) > MAX_CHOICE_VALUE:
            # Too long for a choice value, the typed text is submitted as is
            await ctx.responder.autocomplete(choices)
            return True
        if focused == "album" and album:
            choices.append(Choice(album, album))
        elif focused == "link" and album.startswith("https://"):
            # Suggest reusing a link typed as the album
            choices.append(Choice(album, album))
        await ctx.responder.autocomplete(choices)
        return True
