"""Tests for birthday storage and commands."""

from datetime import date
from unittest.mock import MagicMock

import pytest

from conftest import make_interaction
from lpbot.commands import CommandKey
from lpbot.dispatcher import Dispatcher
from lpbot.modules.birthdays import Birthday, ModBirthdays, sort_from_today
from lpbot.modules.database import Database
from lpbot.registry import RegistryBuilder


async def _setup(transport, guild_id=None):
    config = MagicMock()
    config.guild_id = guild_id
    builder = RegistryBuilder(config)
    await builder.with_instance(Database())
    await builder.with_module(ModBirthdays)
    state = builder.build()
    return Dispatcher(state, transport), state


def test_sort_from_today():
    bdays = [Birthday(1, 1, 1), Birthday(2, 20, 6), Birthday(3, 5, 12), Birthday(4, 10, 6)]
    ordered = sort_from_today(bdays, today=date(2024, 6, 10))
    assert [b.user_id for b in ordered] == [4, 2, 3, 1]


class TestBirthdayCommands:

    @pytest.mark.asyncio
    async def test_set_and_list(self, transport):
        dispatcher, _ = await _setup(transport)
        await dispatcher.dispatch(make_interaction("bday", {"day": 3, "month": 4}, user_id=5))
        await dispatcher.dispatch(make_interaction("bday", {"day": 9, "month": 4}, user_id=5))
        await dispatcher.dispatch(make_interaction("bdays"))

        set_reply, _, listing = transport.payloads("response")
        assert set_reply.content == "Birthday set!"
        assert set_reply.ephemeral is True
        embed = listing.embeds[0]
        assert embed["author"]["name"] == "Birthdays in Crab Rave"
        assert embed["description"] == "`09/04` • <@5>"

    @pytest.mark.asyncio
    async def test_invalid_day(self, transport):
        dispatcher, _ = await _setup(transport)
        await dispatcher.dispatch(make_interaction("bday", {"day": 32, "month": 1}))
        (message,) = transport.payloads("response")
        assert message.content.startswith("Invalid option day")

    @pytest.mark.asyncio
    async def test_commands_scoped_to_configured_guild(self, transport):
        _, state = await _setup(transport, guild_id=77)
        assert state.commands.get(CommandKey("bday")).guild_id == 77
        assert state.commands.get(CommandKey("bdays")).guild_id == 77

    @pytest.mark.asyncio
    async def test_month_choices_published(self, transport):
        _, state = await _setup(transport)
        options = state.commands.get(CommandKey("bday")).definition()["options"]
        month = next(o for o in options if o["name"] == "month")
        assert month["choices"][0] == {"name": "January", "value": 1}
        assert len(month["choices"]) == 12

    @pytest.mark.asyncio
    async def test_birthdays_are_per_guild(self, transport):
        dispatcher, state = await _setup(transport)
        module = state.modules.get(ModBirthdays)
        await module.add_birthday(1, Birthday(5, 1, 2, 1990))
        await module.add_birthday(2, Birthday(6, 1, 2))
        assert await module.get_birthdays(1) == [Birthday(5, 1, 2, 1990)]
