"""Interaction dispatcher.

Routes each inbound interaction to its command or to the completion
chain and guarantees that the interaction is answered: a command that
fails at any stage (lookup, argument decoding, execution, delivery)
produces exactly one private error message, sent as a follow-up when
the command had already deferred. After a public defer the placeholder
is removed first so the error stays private.

Key classes:
    Dispatcher: Stateless router over a frozen BotState.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from .commands.base import CommandContext, CommandKey, CommandResponse
from .exceptions import LPBotError, UnknownCommandError, describe_error
from .transport import OutgoingMessage, Responder, Transport

if TYPE_CHECKING:
    from .interaction import Interaction
    from .registry import BotState

logger = structlog.get_logger("lpbot.commands")


class Dispatcher:
    """Dispatches interactions against a frozen BotState.

    Safe to call concurrently: per-interaction state lives in the
    Responder created for each call.

    Args:
        state: Modules, commands and completion resolvers.
        transport: Platform adapter used to answer.
    """

    def __init__(self, state: "BotState", transport: Transport):
        self.state = state
        self.transport = transport

    async def dispatch(self, interaction: "Interaction") -> None:
        """Handle one interaction. Never raises."""
        responder = Responder(self.transport, interaction)
        ctx = CommandContext(self.state.modules, responder, interaction)
        log = logger.bind(
            guild=interaction.guild_name or interaction.guild_id,
            user=interaction.user.name,
            command=interaction.command_name,
        )

        if interaction.is_autocomplete:
            await self._autocomplete(ctx, log)
        elif interaction.is_command:
            await self._command(ctx, log)
        else:
            log.debug("interaction_ignored", kind=interaction.kind.name)

    async def _autocomplete(self, ctx: CommandContext, log) -> None:
        try:
            claimed = await self.state.completions.resolve(ctx)
        except Exception as e:
            log.error(
                "completion_failed",
                focused=ctx.interaction.focused_option(),
                error=str(e),
                error_type=type(e).__name__,
            )
            claimed = ctx.responder.acknowledged
        if claimed:
            return
        try:
            await ctx.responder.autocomplete([])
        except Exception as e:
            log.error("cannot_respond", error=str(e), error_type=type(e).__name__)

    async def _command(self, ctx: CommandContext, log) -> None:
        interaction = ctx.interaction
        log = log.bind(args=interaction.format_options())
        start = time.monotonic()
        try:
            response = await self._run(ctx)
            message = response.to_message()
            if message is None:
                if not ctx.responder.acknowledged:
                    log.warning("command_left_unacknowledged")
            else:
                await ctx.responder.send(message)
        except Exception as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            if isinstance(e, LPBotError):
                log.warning(
                    "command_failed",
                    elapsed_ms=elapsed_ms,
                    outcome="error",
                    error=str(e),
                    error_type=type(e).__name__,
                )
            else:
                log.exception(
                    "command_crashed",
                    elapsed_ms=elapsed_ms,
                    outcome="error",
                    error=str(e),
                    error_type=type(e).__name__,
                )
            await self._send_error(ctx.responder, e, log)
            return

        log.info(
            "command_completed",
            elapsed_ms=int((time.monotonic() - start) * 1000),
            outcome=response.visibility.value,
        )

    async def _run(self, ctx: CommandContext) -> CommandResponse:
        interaction = ctx.interaction
        key = CommandKey(interaction.command_name, interaction.command_kind)
        descriptor = self.state.commands.get(key)
        if descriptor is None:
            raise UnknownCommandError(command=str(key))
        args = descriptor.decode(interaction)
        return await descriptor.execute(args, ctx)

    async def _send_error(self, responder: Responder, error: BaseException, log) -> None:
        message = OutgoingMessage(content=describe_error(error), ephemeral=True)
        try:
            await responder.send_private(message)
        except Exception as e:
            log.error("cannot_respond", error=str(e), error_type=type(e).__name__)

    async def register_commands(self) -> int:
        """Push every command definition to the platform.

        Scoped commands go to their community only, the rest globally.

        Returns:
            Number of definitions registered.
        """
        count = 0
        for descriptor in self.state.commands.all():
            await self.transport.register_command(
                descriptor.definition(), guild_id=descriptor.guild_id
            )
            count += 1
        logger.info(
            "commands_registered",
            total=count,
            scoped=len(self.state.commands.scoped_commands()),
        )
        return count
