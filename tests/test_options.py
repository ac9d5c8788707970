"""Tests for typed command options (pydantic-backed BotCommand)."""

from typing import Optional

import pytest

from conftest import make_interaction
from lpbot.commands import BotCommand, CommandDescriptor, Permissions, RoleId, UserId, option
from lpbot.exceptions import OptionError
from lpbot.interaction import CommandKind


class Sample(BotCommand):
    NAME = "sample"
    DESCRIPTION = "Sample command"
    PERMISSIONS = Permissions.MANAGE_ROLES

    flag: bool = option(False, description="A flag")
    album: str = option(description="Album name", autocomplete=True, max_length=200)
    number: Optional[int] = option(None, description="Number", ge=1, le=31)
    month: int = option(description="Month", choices=[("January", 1), ("February", 2)])
    user: Optional[UserId] = option(None, description="User")
    role: Optional[RoleId] = option(None, description="Role")
    ratio: Optional[float] = option(None, description="Ratio")


class Menu(BotCommand):
    NAME = "quote"
    KIND = CommandKind.MESSAGE


def _by_name(options):
    return {o["name"]: o for o in options}


# -------------------------------------------------------------------
# build_options
# -------------------------------------------------------------------

class TestBuildOptions:

    def test_required_first(self):
        options = Sample.build_options()
        required = [o["required"] for o in options]
        assert required == sorted(required, reverse=True)
        assert {o["name"] for o in options if o["required"]} == {"album", "month"}

    def test_types(self):
        options = _by_name(Sample.build_options())
        assert options["flag"]["type"] == 5
        assert options["album"]["type"] == 3
        assert options["number"]["type"] == 4
        assert options["user"]["type"] == 6
        assert options["role"]["type"] == 8
        assert options["ratio"]["type"] == 10

    def test_constraints_and_extras(self):
        options = _by_name(Sample.build_options())
        assert options["number"]["min_value"] == 1
        assert options["number"]["max_value"] == 31
        assert options["album"]["max_length"] == 200
        assert options["album"]["autocomplete"] is True
        assert "autocomplete" not in options["number"]
        assert options["month"]["choices"] == [
            {"name": "January", "value": 1},
            {"name": "February", "value": 2},
        ]
        assert options["album"]["description"] == "Album name"

    def test_descriptor_from_command(self):
        descriptor = CommandDescriptor.from_command(Sample, guild_id=9)
        assert descriptor.key == Sample.key()
        assert descriptor.guild_id == 9
        definition = descriptor.definition()
        assert definition["name"] == "sample"
        assert definition["description"] == "Sample command"
        assert definition["default_member_permissions"] == str(int(Permissions.MANAGE_ROLES))
        assert len(definition["options"]) == 7

    def test_context_menu_key(self):
        assert Menu.key().kind == CommandKind.MESSAGE
        assert Menu.build_options() == []


# -------------------------------------------------------------------
# from_interaction
# -------------------------------------------------------------------

class TestFromInteraction:

    def test_decodes_and_applies_defaults(self):
        args = Sample.from_interaction(
            make_interaction("sample", {"album": "Kid A", "month": 2, "role": "123"})
        )
        assert args.album == "Kid A"
        assert args.month == 2
        assert args.role == 123
        assert args.number is None
        assert args.flag is False

    def test_missing_required_option(self):
        with pytest.raises(OptionError) as exc_info:
            Sample.from_interaction(make_interaction("sample", {"month": 1}))
        assert exc_info.value.message == "Missing option album"
        assert exc_info.value.option == "album"
        assert exc_info.value.command == "sample"

    def test_out_of_range_option(self):
        with pytest.raises(OptionError) as exc_info:
            Sample.from_interaction(
                make_interaction("sample", {"album": "x", "month": 1, "number": 40})
            )
        assert exc_info.value.message.startswith("Invalid option number:")

    def test_wrong_type_option(self):
        with pytest.raises(OptionError) as exc_info:
            Sample.from_interaction(
                make_interaction("sample", {"album": "x", "month": "soon"})
            )
        assert exc_info.value.option == "month"

    def test_unknown_options_ignored(self):
        args = Sample.from_interaction(
            make_interaction("sample", {"album": "x", "month": 1, "extra": "y"})
        )
        assert not hasattr(args, "extra")

    @pytest.mark.asyncio
    async def test_base_run_not_implemented(self):
        with pytest.raises(NotImplementedError):
            await Menu().run(None)
