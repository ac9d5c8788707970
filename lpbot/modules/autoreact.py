"""Automatic reactions to messages containing a trigger word."""

import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import structlog

from ..commands import (
    BotCommand,
    CommandContext,
    CommandKey,
    CommandResponse,
    CommandTable,
    Permissions,
    option,
)
from ..completion import CompletionChain
from ..exceptions import CommandError
from ..interaction import CommandKind
from ..registry import Module, ModuleRegistry
from ..transport import Choice
from .database import Database

logger = structlog.get_logger("lpbot.modules")

AUTOREACT_SCHEMA = """
CREATE TABLE IF NOT EXISTS autoreact (
    guild_id INTEGER NOT NULL,
    trigger TEXT NOT NULL,
    emote TEXT NOT NULL
);
"""

COMPLETION_LIMIT = 25

# <:name:id> or <a:name:id>
_CUSTOM_EMOTE = re.compile(r"^<a?:\w+:\d+>$")


@dataclass(frozen=True)
class AutoReact:
    trigger: str
    emote: str


def validate_emote(emote: str) -> str:
    emote = emote.strip()
    if emote.startswith("<") and not _CUSTOM_EMOTE.match(emote):
        raise CommandError(f"Invalid emote {emote}")
    if not emote or any(c.isspace() for c in emote):
        raise CommandError("Invalid emote")
    return emote


class AddAutoreact(BotCommand):
    NAME = "add_autoreact"
    DESCRIPTION = "Automatically add reactions to messages"
    PERMISSIONS = Permissions.MANAGE_EMOJIS_AND_STICKERS

    trigger: str = option(
        description="The word that will trigger the reaction (case-insensitive)", min_length=1
    )
    emote: str = option(description="The emote to react with")

    async def run(self, ctx: CommandContext) -> CommandResponse:
        guild_id = ctx.interaction.require_guild()
        await ctx.modules.get(ModAutoreact).add(guild_id, self.trigger, self.emote)
        return CommandResponse.private("Autoreact added")


class RemoveAutoreact(BotCommand):
    NAME = "remove_autoreact"
    DESCRIPTION = "Remove automatic reaction"
    PERMISSIONS = Permissions.MANAGE_EMOJIS_AND_STICKERS

    trigger: str = option(
        description="The word that triggers the reaction (case-insensitive)", autocomplete=True
    )
    emote: str = option(description="The emote to stop reacting with", autocomplete=True)

    async def run(self, ctx: CommandContext) -> CommandResponse:
        guild_id = ctx.interaction.require_guild()
        removed = await ctx.modules.get(ModAutoreact).remove(guild_id, self.trigger, self.emote)
        if not removed:
            raise CommandError("No such autoreact", command=self.NAME)
        return CommandResponse.private("Autoreact removed")


class ModAutoreact(Module):
    """Autoreact storage plus an in-memory cache per community.

    The cache is only written by ``add`` and ``remove`` and read by
    ``reactions_for`` without awaiting, so readers never see a
    half-applied update.
    """

    depends_on = (Database,)

    def __init__(self, db: Database, cache: Optional[Dict[int, List[AutoReact]]] = None):
        self.db = db
        self._cache: Dict[int, List[AutoReact]] = defaultdict(list)
        for guild_id, reacts in (cache or {}).items():
            self._cache[guild_id].extend(reacts)

    @classmethod
    async def construct(cls, modules: ModuleRegistry) -> "ModAutoreact":
        db = modules.get(Database)
        await db.execute_script(AUTOREACT_SCHEMA)
        cache: Dict[int, List[AutoReact]] = defaultdict(list)
        async with db.connection() as conn:
            for row in conn.execute("SELECT guild_id, trigger, emote FROM autoreact"):
                cache[row[0]].append(AutoReact(row[1], row[2]))
        logger.info("autoreacts_loaded", guilds=len(cache))
        return cls(db, cache)

    def register(self, commands: CommandTable, completions: CompletionChain) -> None:
        commands.register(AddAutoreact)
        commands.register(RemoveAutoreact)
        completions.push(self.complete_remove)

    async def add(self, guild_id: int, trigger: str, emote: str) -> AutoReact:
        react = AutoReact(trigger.lower(), validate_emote(emote))
        async with self.db.connection() as conn:
            conn.execute(
                "INSERT INTO autoreact (guild_id, trigger, emote) VALUES (?, ?, ?)",
                (guild_id, react.trigger, react.emote),
            )
        self._cache[guild_id].append(react)
        return react

    async def remove(self, guild_id: int, trigger: str, emote: str) -> bool:
        """Delete every autoreact matching both trigger and emote."""
        react = AutoReact(trigger.lower(), emote.strip())
        async with self.db.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM autoreact WHERE guild_id = ? AND trigger = ? AND emote = ?",
                (guild_id, react.trigger, react.emote),
            )
            deleted = cursor.rowcount
        self._cache[guild_id] = [r for r in self._cache[guild_id] if r != react]
        return deleted > 0

    def reactions_for(self, guild_id: Optional[int], content: str) -> List[str]:
        """Emotes to add to a message, ordered by where their trigger appears."""
        if guild_id is None:
            return []
        lower = content.lower()
        found: List[Tuple[int, int, str]] = []
        for i, react in enumerate(self._cache.get(guild_id, ())):
            pos = lower.find(react.trigger)
            if pos >= 0:
                found.append((pos, i, react.emote))
        return [emote for _, _, emote in sorted(found)]

    async def search(self, guild_id: int, trigger: str, emote: str) -> List[AutoReact]:
        async with self.db.connection() as conn:
            rows = conn.execute(
                """
                SELECT trigger, emote FROM autoreact
                WHERE guild_id = ? AND trigger LIKE '%' || ? || '%' AND emote LIKE '%' || ? || '%'
                LIMIT ?
                """,
                (guild_id, trigger, emote, COMPLETION_LIMIT),
            ).fetchall()
        return [AutoReact(row[0], row[1]) for row in rows]

    async def complete_remove(self, ctx: CommandContext, key: CommandKey) -> bool:
        if key != CommandKey(RemoveAutoreact.NAME, CommandKind.CHAT_INPUT):
            return False
        interaction = ctx.interaction
        guild_id = interaction.require_guild()
        matches = await self.search(
            guild_id,
            str(interaction.option_value("trigger", "")),
            str(interaction.option_value("emote", "")),
        )
        field = "trigger" if interaction.focused_option() == "trigger" else "emote"
        values: List[str] = []
        for react in matches:
            value = getattr(react, field)
            if value not in values:
                values.append(value)
        await ctx.responder.autocomplete([Choice(v, v) for v in values])
        return True
