"""Tests for the autocomplete resolver chain."""

import pytest

from conftest import FakeTransport, make_autocomplete
from lpbot.commands import CommandContext, CommandKey
from lpbot.completion import CompletionChain
from lpbot.registry import ModuleRegistry
from lpbot.transport import Choice, Responder


def _ctx(command="lp", options=None, focused="album"):
    interaction = make_autocomplete(command, options or {"album": "Ki"}, focused)
    transport = FakeTransport()
    return transport, CommandContext(ModuleRegistry(), Responder(transport, interaction), interaction)


def _resolver(name, log, claims_key=None):
    async def resolve(ctx, key):
        log.append(name)
        if key != claims_key:
            return False
        await ctx.responder.autocomplete([Choice(name, name)])
        return True

    return resolve


class TestCompletionChain:

    @pytest.mark.asyncio
    async def test_first_claim_wins(self):
        log = []
        chain = CompletionChain()
        chain.push(_resolver("quotes", log, CommandKey("quote")))
        chain.push(_resolver("lp", log, CommandKey("lp")))
        chain.push(_resolver("never", log, CommandKey("lp")))

        transport, ctx = _ctx()
        assert await chain.resolve(ctx) is True
        assert log == ["quotes", "lp"]
        assert transport.payloads("autocomplete") == [[Choice("lp", "lp")]]

    @pytest.mark.asyncio
    async def test_unclaimed(self):
        log = []
        chain = CompletionChain()
        chain.push(_resolver("quotes", log, CommandKey("quote")))
        transport, ctx = _ctx()
        assert await chain.resolve(ctx) is False
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_answer_without_claim_stops_chain(self):
        log = []

        async def sloppy(ctx, key):
            await ctx.responder.autocomplete([])
            return False

        chain = CompletionChain()
        chain.push(sloppy)
        chain.push(_resolver("lp", log, CommandKey("lp")))
        transport, ctx = _ctx()
        assert await chain.resolve(ctx) is True
        assert log == []
        assert transport.names == ["autocomplete"]

    def test_frozen_chain(self):
        chain = CompletionChain()
        chain.push(_resolver("a", []))
        chain.freeze()
        assert len(chain) == 1
        with pytest.raises(RuntimeError):
            chain.push(_resolver("b", []))
