"""Tests for the interaction dispatcher.

Every command interaction must end with exactly one answer visible to
the user: the command's own reply, or a single private error message.
"""

from typing import Optional

import pytest

from conftest import FakeTransport, contents, make_autocomplete, make_interaction
from lpbot.commands import BotCommand, CommandResponse, option
from lpbot.exceptions import CommandError
from lpbot.interaction import InteractionKind
from lpbot.registry import Module, RegistryBuilder
from lpbot.transport import Choice, OutgoingMessage
from lpbot.dispatcher import Dispatcher


class Echo(BotCommand):
    NAME = "echo"
    DESCRIPTION = "Echo text"

    text: str = option(description="Text")
    private: bool = option(False, description="Only for me")

    async def run(self, ctx):
        if self.private:
            return CommandResponse.private(self.text)
        return CommandResponse.public(self.text)


class Silent(BotCommand):
    NAME = "silent"

    async def run(self, ctx):
        await ctx.responder.respond(OutgoingMessage("done myself"))
        return CommandResponse.none()


class Forgetful(BotCommand):
    NAME = "forgetful"

    async def run(self, ctx):
        return CommandResponse.none()


class Fails(BotCommand):
    NAME = "fails"

    defer_first: bool = option(False, description="Defer before failing")
    private_defer: bool = option(False, description="Defer privately")

    async def run(self, ctx):
        if self.defer_first:
            await ctx.responder.defer(ephemeral=self.private_defer)
        raise CommandError("Something went wrong")


class Crashes(BotCommand):
    NAME = "crashes"

    async def run(self, ctx):
        raise KeyError("oops")


class Slow(BotCommand):
    NAME = "slow"

    async def run(self, ctx):
        await ctx.responder.defer()
        return CommandResponse.public("finally")


class Counted(BotCommand):
    NAME = "counted"
    number: Optional[int] = option(None, description="n", ge=1, autocomplete=True)

    async def run(self, ctx):
        return CommandResponse.public(str(self.number))


class ModSample(Module):
    def register(self, commands, completions):
        for command in (Echo, Silent, Forgetful, Fails, Crashes, Slow):
            commands.register(command)
        commands.register(Counted, guild_id=77)
        completions.push(self.complete)

    async def complete(self, ctx, key):
        if key.name != "counted":
            return False
        if ctx.interaction.option_value("number") == "boom":
            raise RuntimeError("resolver bug")
        if ctx.interaction.option_value("number") == "late":
            await ctx.responder.autocomplete([Choice("1", 1)])
            raise RuntimeError("after answering")
        await ctx.responder.autocomplete([Choice("1", 1), Choice("2", 2)])
        return True


async def _dispatcher(transport):
    builder = await RegistryBuilder().with_module(ModSample)
    return Dispatcher(builder.build(), transport)


# -------------------------------------------------------------------
# Commands
# -------------------------------------------------------------------

class TestCommandDispatch:

    @pytest.mark.asyncio
    async def test_public_reply(self, transport):
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_interaction("echo", {"text": "hello"}))
        (message,) = transport.payloads("response")
        assert message.content == "hello"
        assert message.ephemeral is False
        assert transport.names == ["response"]

    @pytest.mark.asyncio
    async def test_private_reply(self, transport):
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_interaction("echo", {"text": "psst", "private": True}))
        (message,) = transport.payloads("response")
        assert message.ephemeral is True

    @pytest.mark.asyncio
    async def test_none_sends_nothing_more(self, transport):
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_interaction("silent"))
        assert contents(transport.payloads("response")) == ["done myself"]
        assert transport.names == ["response"]

    @pytest.mark.asyncio
    async def test_none_without_ack_sends_nothing(self, transport):
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_interaction("forgetful"))
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_deferred_reply_is_followup(self, transport):
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_interaction("slow"))
        assert transport.names == ["defer", "followup"]
        assert contents(transport.payloads("followup")) == ["finally"]

    @pytest.mark.asyncio
    async def test_unknown_command(self, transport):
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_interaction("missing"))
        (message,) = transport.payloads("response")
        assert message.content == "Unknown command"
        assert message.ephemeral is True

    @pytest.mark.asyncio
    async def test_option_error_is_private_reply(self, transport):
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_interaction("echo"))
        (message,) = transport.payloads("response")
        assert message.content == "Missing option text"
        assert message.ephemeral is True

    @pytest.mark.asyncio
    async def test_command_error_message(self, transport):
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_interaction("fails"))
        assert transport.names == ["response"]
        (message,) = transport.payloads("response")
        assert message.content == "Something went wrong"
        assert message.ephemeral is True

    @pytest.mark.asyncio
    async def test_error_after_private_defer_is_followup(self, transport):
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(
            make_interaction("fails", {"defer_first": True, "private_defer": True})
        )
        assert transport.names == ["defer", "followup"]
        (message,) = transport.payloads("followup")
        assert message.content == "Something went wrong"
        assert message.ephemeral is True

    @pytest.mark.asyncio
    async def test_error_after_public_defer_replaces_placeholder(self, transport):
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_interaction("fails", {"defer_first": True}))
        # The public placeholder goes away before the private error
        assert transport.calls[0] == ("defer", False)
        assert transport.names == ["defer", "delete_original", "followup"]
        (message,) = transport.payloads("followup")
        assert message.content == "Something went wrong"
        assert message.ephemeral is True

    @pytest.mark.asyncio
    async def test_failed_public_followup_leaves_placeholder_to_delete(self, transport):
        transport.fail["followup"] = RuntimeError("network down")
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_interaction("slow"))
        assert transport.names == ["defer", "followup", "delete_original", "followup"]
        assert transport.payloads("followup")[1].ephemeral is True

    @pytest.mark.asyncio
    async def test_placeholder_delete_failure_still_reports(self, transport):
        transport.fail["delete_original"] = RuntimeError("unknown message")
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_interaction("fails", {"defer_first": True}))
        assert transport.names == ["defer", "delete_original", "followup"]

    @pytest.mark.asyncio
    async def test_crash_is_reported(self, transport):
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_interaction("crashes"))
        (message,) = transport.payloads("response")
        assert message.content == "'oops'"
        assert message.ephemeral is True

    @pytest.mark.asyncio
    async def test_failed_reply_reported_as_followup(self, transport):
        transport.fail["response"] = RuntimeError("network down")
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_interaction("echo", {"text": "hello"}))
        assert transport.names == ["response", "followup"]
        (message,) = transport.payloads("followup")
        assert message.content == "network down"

    @pytest.mark.asyncio
    async def test_error_reply_failure_never_raises(self, transport):
        transport.fail["response"] = RuntimeError("network down")
        transport.fail["followup"] = RuntimeError("still down")
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_interaction("echo", {"text": "hello"}))
        assert transport.names == ["response", "followup"]

    @pytest.mark.asyncio
    async def test_components_ignored(self, transport):
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(
            make_interaction("echo", {"text": "x"}, kind=InteractionKind.MESSAGE_COMPONENT)
        )
        assert transport.calls == []


# -------------------------------------------------------------------
# Autocomplete
# -------------------------------------------------------------------

class TestAutocompleteDispatch:

    @pytest.mark.asyncio
    async def test_claimed(self, transport):
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_autocomplete("counted", {"number": "1"}, "number"))
        (choices,) = transport.payloads("autocomplete")
        assert [c.value for c in choices] == [1, 2]

    @pytest.mark.asyncio
    async def test_unclaimed_gets_empty_list(self, transport):
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_autocomplete("echo", {"text": "he"}, "text"))
        assert transport.payloads("autocomplete") == [[]]

    @pytest.mark.asyncio
    async def test_resolver_failure_gets_empty_list(self, transport):
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_autocomplete("counted", {"number": "boom"}, "number"))
        assert transport.payloads("autocomplete") == [[]]

    @pytest.mark.asyncio
    async def test_resolver_failure_after_answer_not_answered_twice(self, transport):
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_autocomplete("counted", {"number": "late"}, "number"))
        assert transport.names == ["autocomplete"]

    @pytest.mark.asyncio
    async def test_autocomplete_send_failure_swallowed(self, transport):
        transport.fail["autocomplete"] = RuntimeError("expired")
        dispatcher = await _dispatcher(transport)
        await dispatcher.dispatch(make_autocomplete("echo", {"text": "he"}, "text"))
        assert transport.names == ["autocomplete"]


# -------------------------------------------------------------------
# Registration
# -------------------------------------------------------------------

class TestRegisterCommands:

    @pytest.mark.asyncio
    async def test_scoped_and_global(self, transport):
        dispatcher = await _dispatcher(transport)
        count = await dispatcher.register_commands()
        registered = transport.payloads("register")
        assert count == len(registered) == 7
        scoped = {d["name"]: g for d, g in registered}
        assert scoped["counted"] == 77
        assert scoped["echo"] is None

    @pytest.mark.asyncio
    async def test_registration_failure_propagates(self):
        transport = FakeTransport()
        transport.fail["register"] = RuntimeError("forbidden")
        dispatcher = await _dispatcher(transport)
        with pytest.raises(RuntimeError):
            await dispatcher.register_commands()
