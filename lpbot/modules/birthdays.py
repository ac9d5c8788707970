"""Birthdays: /bday to save yours, /bdays to list the community's."""

from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from ..commands import BotCommand, CommandContext, CommandResponse, CommandTable, option
from ..completion import CompletionChain
from ..registry import Module, ModuleRegistry
from .database import Database

BDAY_SCHEMA = """
CREATE TABLE IF NOT EXISTS bdays (
    guild_id INTEGER NOT NULL,
    user_id INTEGER NOT NULL,
    day INTEGER NOT NULL,
    month INTEGER NOT NULL,
    year INTEGER,
    UNIQUE(guild_id, user_id)
);
"""

MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


@dataclass
class Birthday:
    user_id: int
    day: int
    month: int
    year: Optional[int] = None


def sort_from_today(bdays: List[Birthday], today: Optional[date] = None) -> List[Birthday]:
    """Order birthdays by how soon they come, starting today."""
    today = today or date.today()

    def key(b: Birthday) -> int:
        month = b.month
        if (b.month, b.day) < (today.month, today.day):
            month += 12
        return month * 31 + b.day

    return sorted(bdays, key=key)


class SetBday(BotCommand):
    NAME = "bday"
    DESCRIPTION = "Set your birthday"

    day: int = option(description="Day", ge=1, le=31)
    month: int = option(
        description="Month", choices=[(name, n) for n, name in enumerate(MONTHS, start=1)]
    )
    year: Optional[int] = option(None, description="Year")

    async def run(self, ctx: CommandContext) -> CommandResponse:
        guild_id = ctx.interaction.require_guild()
        await ctx.modules.get(ModBirthdays).add_birthday(
            guild_id, Birthday(ctx.interaction.user.id, self.day, self.month, self.year)
        )
        return CommandResponse.private("Birthday set!")


class ListBdays(BotCommand):
    NAME = "bdays"
    DESCRIPTION = "List server birthdays"

    async def run(self, ctx: CommandContext) -> CommandResponse:
        interaction = ctx.interaction
        guild_id = interaction.require_guild()
        bdays = sort_from_today(await ctx.modules.get(ModBirthdays).get_birthdays(guild_id))
        lines = [f"`{b.day:02}/{b.month:02}` • <@{b.user_id}>" for b in bdays]
        header = f"Birthdays in {interaction.guild_name}" if interaction.guild_name else "Birthdays"
        return CommandResponse.public(
            embeds=[{"author": {"name": header}, "description": "\n".join(lines)}]
        )


class ModBirthdays(Module):
    """Birthday storage. Commands are registered to the configured community only."""

    depends_on = (Database,)

    def __init__(self, db: Database, guild_id: Optional[int] = None):
        self.db = db
        self.guild_id = guild_id

    @classmethod
    async def construct(cls, modules: ModuleRegistry) -> "ModBirthdays":
        db = modules.get(Database)
        await db.execute_script(BDAY_SCHEMA)
        guild_id = modules.config.guild_id if modules.config is not None else None
        return cls(db, guild_id)

    def register(self, commands: CommandTable, completions: CompletionChain) -> None:
        commands.register(SetBday, guild_id=self.guild_id)
        commands.register(ListBdays, guild_id=self.guild_id)

    async def add_birthday(self, guild_id: int, bday: Birthday) -> None:
        async with self.db.connection() as conn:
            conn.execute(
                """
                INSERT INTO bdays (guild_id, user_id, day, month, year)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(guild_id, user_id) DO UPDATE
                SET day = excluded.day, month = excluded.month, year = excluded.year
                """,
                (guild_id, bday.user_id, bday.day, bday.month, bday.year),
            )

    async def get_birthdays(self, guild_id: int) -> List[Birthday]:
        async with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT user_id, day, month, year FROM bdays WHERE guild_id = ?", (guild_id,)
            ).fetchall()
        return [Birthday(*row) for row in rows]
