"""Quote store: save messages through the context menu, recall with /quote."""

import random
import re
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import structlog

from ..commands import (
    BotCommand,
    CommandContext,
    CommandKey,
    CommandResponse,
    CommandTable,
    UserId,
    option,
)
from ..completion import CompletionChain
from ..exceptions import CommandError, DatabaseError
from ..interaction import CommandKind
from ..registry import Module, ModuleRegistry
from ..transport import Choice
from .database import Database

logger = structlog.get_logger("lpbot.modules")

QUOTE_SCHEMA = """
CREATE TABLE IF NOT EXISTS quote (
    guild_id INTEGER,
    channel_id INTEGER,
    message_id INTEGER,
    ts INTEGER,
    quote_number INTEGER,
    author_id INTEGER,
    author_name TEXT,
    contents TEXT,
    UNIQUE(guild_id, quote_number),
    UNIQUE(guild_id, message_id)
);
"""

# Suggestions offered while typing a quote number
COMPLETION_LIMIT = 15

_USER_MENTION = re.compile(r"(<@\d+>)")


@dataclass
class Quote:
    quote_number: int
    guild_id: int
    channel_id: int
    message_id: int
    ts: int
    author_id: int
    author_name: str
    contents: str

    @property
    def url(self) -> str:
        return f"https://discord.com/channels/{self.guild_id}/{self.channel_id}/{self.message_id}"


def _timestamp(value: Any) -> int:
    if not value:
        return int(datetime.now(timezone.utc).timestamp())
    return int(datetime.fromisoformat(str(value)).timestamp())


class ModQuotes(Module):
    depends_on = (Database,)

    def __init__(self, db: Database):
        self.db = db

    @classmethod
    async def construct(cls, modules: ModuleRegistry) -> "ModQuotes":
        db = modules.get(Database)
        await db.execute_script(QUOTE_SCHEMA)
        return cls(db)

    def register(self, commands: CommandTable, completions: CompletionChain) -> None:
        commands.register(GetQuote)
        commands.register(SaveQuote)
        completions.push(self.complete_quote)

    async def add_quote(self, guild_id: int, message: Dict[str, Any]) -> Optional[int]:
        """Save a message as the next quote of the community.

        Returns:
            The new quote number, or None if the message was already saved.
        """
        author = message.get("author") or {}
        async with self.db.connection() as conn:
            row = conn.execute(
                "SELECT MAX(quote_number) FROM quote WHERE guild_id = ?", (guild_id,)
            ).fetchone()
            number = (row[0] or 0) + 1
            try:
                conn.execute(
                    """
                    INSERT INTO quote (
                        guild_id, channel_id, message_id, ts, quote_number,
                        author_id, author_name, contents
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        guild_id,
                        int(message["channel_id"]),
                        int(message["id"]),
                        _timestamp(message.get("timestamp")),
                        number,
                        int(author.get("id", 0)),
                        author.get("global_name") or author.get("username", ""),
                        message.get("content", ""),
                    ),
                )
            except sqlite3.IntegrityError:
                return None
            except sqlite3.Error as e:
                raise DatabaseError(str(e), operation="insert", table="quote") from e
        logger.info("quote_saved", guild=guild_id, number=number)
        return number

    async def fetch_quote(self, guild_id: int, number: int) -> Optional[Quote]:
        async with self.db.connection() as conn:
            row = conn.execute(
                """
                SELECT guild_id, channel_id, message_id, ts, author_id, author_name, contents
                FROM quote WHERE guild_id = ? AND quote_number = ?
                """,
                (guild_id, number),
            ).fetchone()
        if row is None:
            return None
        return Quote(quote_number=number, **dict(row))

    async def random_quote(self, guild_id: int, user_id: Optional[int] = None) -> Optional[Quote]:
        query = "SELECT quote_number FROM quote WHERE guild_id = ?"
        params: Tuple[int, ...] = (guild_id,)
        if user_id is not None:
            query += " AND author_id = ?"
            params += (user_id,)
        async with self.db.connection() as conn:
            numbers = [row[0] for row in conn.execute(query, params).fetchall()]
        if not numbers:
            return None
        return await self.fetch_quote(guild_id, random.choice(numbers))

    async def list_quotes(self, guild_id: int, like: str) -> List[Tuple[int, str]]:
        async with self.db.connection() as conn:
            rows = conn.execute(
                """
                SELECT quote_number, contents FROM quote
                WHERE guild_id = ? AND contents LIKE '%' || ? || '%'
                ORDER BY quote_number LIMIT ?
                """,
                (guild_id, like, COMPLETION_LIMIT),
            ).fetchall()
        return [(row[0], row[1]) for row in rows]

    async def complete_quote(self, ctx: CommandContext, key: CommandKey) -> bool:
        if key != CommandKey(GetQuote.NAME, CommandKind.CHAT_INPUT):
            return False
        interaction = ctx.interaction
        guild_id = interaction.require_guild()
        typed = str(interaction.option_value("number", ""))
        quotes = await self.list_quotes(guild_id, typed)
        await ctx.responder.autocomplete(
            [Choice(contents or f"#{number}", number) for number, contents in quotes]
        )
        return True


def quote_embed(quote: Quote, header: str, hide_author: bool) -> Dict[str, Any]:
    contents = f"{quote.contents}\n - <@{quote.author_id}> [(Source)]({quote.url})"
    if hide_author:
        contents = _USER_MENTION.sub(r"||\1||", contents)
    return {
        "author": {"name": f"#{quote.quote_number}{header}"},
        "description": contents,
        "url": quote.url,
        "footer": {"text": f"in <#{quote.channel_id}>"},
        "timestamp": datetime.fromtimestamp(quote.ts, timezone.utc).isoformat(),
    }


class GetQuote(BotCommand):
    NAME = "quote"
    DESCRIPTION = "Retrieve a quote"

    number: Optional[int] = option(
        None,
        description="Number the quote was saved as (optional)",
        autocomplete=True,
        ge=1,
    )
    user: Optional[UserId] = option(None, description="Get a random quote from a specific user")
    hide_author: Optional[bool] = option(
        None, description="Hide the username for even more confusion"
    )

    async def run(self, ctx: CommandContext) -> CommandResponse:
        guild_id = ctx.interaction.require_guild()
        quotes = ctx.modules.get(ModQuotes)
        if self.number is not None:
            quote = await quotes.fetch_quote(guild_id, self.number)
        else:
            quote = await quotes.random_quote(guild_id, self.user)
        if quote is None:
            raise CommandError("No such quote", command=self.NAME)

        hide_author = self.hide_author is True
        if self.number is not None:
            header = ""
        elif self.user is not None:
            header = " - Random quote from " + ("REDACTED" if hide_author else quote.author_name)
        else:
            header = " - Random quote"
        return CommandResponse.public(embeds=[quote_embed(quote, header, hide_author)])


class SaveQuote(BotCommand):
    NAME = "quote"
    KIND = CommandKind.MESSAGE

    async def run(self, ctx: CommandContext) -> CommandResponse:
        guild_id = ctx.interaction.require_guild()
        message = ctx.interaction.target_message()
        if message is None:
            raise CommandError("No message to quote", command=self.NAME)
        number = await ctx.modules.get(ModQuotes).add_quote(guild_id, message)
        if number is None:
            return CommandResponse.public("Quote already added")
        link = f"https://discord.com/channels/{guild_id}/{message['channel_id']}/{message['id']}"
        return CommandResponse.public(f"Quote saved as #{number}: {link}")
