"""Autocomplete resolver chain.

Resolvers are tried in registration order (which is module build
order) until one claims the request. A resolver must check whether the
request is for one of its commands before answering and return False
without touching the interaction when it is not.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Awaitable, Callable, List

import structlog

from .commands.base import CommandKey

if TYPE_CHECKING:
    from .commands.base import CommandContext

logger = structlog.get_logger("lpbot.commands")

# async (ctx, key) -> True if the resolver answered the request
CompletionResolver = Callable[["CommandContext", CommandKey], Awaitable[bool]]


class CompletionChain:
    """Ordered list of completion resolvers."""

    def __init__(self):
        self._resolvers: List[CompletionResolver] = []
        self._frozen = False

    def push(self, resolver: CompletionResolver) -> None:
        if self._frozen:
            raise RuntimeError("Completion chain is frozen")
        self._resolvers.append(resolver)

    async def resolve(self, ctx: "CommandContext") -> bool:
        """Offer the request to each resolver until one claims it.

        Returns:
            True if a resolver answered, False if nobody did (the caller
            still owes the platform an empty suggestion list).
        """
        interaction = ctx.interaction
        key = CommandKey(interaction.command_name, interaction.command_kind)
        for resolver in self._resolvers:
            if await resolver(ctx, key):
                return True
            if ctx.responder.acknowledged:
                logger.error(
                    "completion_resolver_responded_without_claim",
                    resolver=getattr(resolver, "__qualname__", repr(resolver)),
                    command=str(key),
                )
                return True
        return False

    def freeze(self) -> None:
        self._frozen = True

    def __len__(self) -> int:
        return len(self._resolvers)
