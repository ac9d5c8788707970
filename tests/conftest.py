"""Shared test helpers: a recording transport and interaction builders."""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

from lpbot.interaction import CommandKind, Interaction, InteractionKind


class FakeTransport:
    """Transport that records every call as (name, payload).

    Set ``fail[name] = exc`` to make a call raise after being recorded.
    """

    def __init__(self):
        self.calls: List[Tuple[str, Any]] = []
        self.fail: Dict[str, Exception] = {}
        self.original_id = 555
        self._next_id = 1000

    def _record(self, name: str, payload: Any) -> None:
        self.calls.append((name, payload))
        if name in self.fail:
            raise self.fail[name]

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def payloads(self, name: str) -> List[Any]:
        return [payload for n, payload in self.calls if n == name]

    async def send_response(self, interaction, message):
        self._record("response", message)

    async def defer(self, interaction, ephemeral=False):
        self._record("defer", ephemeral)

    async def send_followup(self, interaction, message):
        self._record("followup", message)
        return self._new_id()

    async def send_autocomplete(self, interaction, choices):
        self._record("autocomplete", list(choices))

    async def original_response_id(self, interaction):
        return self.original_id

    async def delete_original_response(self, interaction):
        self._record("delete_original", None)

    async def add_reactions(self, channel_id, message_id, emotes):
        self._record("reactions", (channel_id, message_id, list(emotes)))

    async def send_channel_message(self, channel_id, message):
        self._record("channel_message", (channel_id, message.content))
        return self._new_id()

    async def edit_channel_message(self, channel_id, message_id, content):
        self._record("edit", (channel_id, message_id, content))

    async def register_command(self, definition, guild_id=None):
        self._record("register", (definition, guild_id))


def make_interaction(
    command: str = "lp",
    options: Optional[Dict[str, Any]] = None,
    *,
    kind: InteractionKind = InteractionKind.APPLICATION_COMMAND,
    command_kind: CommandKind = CommandKind.CHAT_INPUT,
    focused: Optional[str] = None,
    guild_id: Optional[int] = 1,
    guild_name: Optional[str] = "Crab Rave",
    channel_id: int = 10,
    user_id: int = 42,
    user_name: str = "alice",
    target_id: Optional[int] = None,
    resolved: Optional[Dict[str, Any]] = None,
) -> Interaction:
    """Build an Interaction through the same payload decoder the bot uses."""
    data: Dict[str, Any] = {
        "name": command,
        "type": int(command_kind),
        "options": [
            {"name": name, "type": 3, "value": value, "focused": name == focused}
            for name, value in (options or {}).items()
        ],
    }
    if target_id is not None:
        data["target_id"] = str(target_id)
    if resolved is not None:
        data["resolved"] = resolved
    payload: Dict[str, Any] = {
        "id": "900",
        "type": int(kind),
        "data": data,
        "channel_id": str(channel_id),
        "member": {"user": {"id": str(user_id), "username": user_name}},
    }
    if guild_id is not None:
        payload["guild_id"] = str(guild_id)
    return Interaction.from_payload(payload, guild_name=guild_name if guild_id else None)


def make_autocomplete(command: str, options: Dict[str, Any], focused: str, **kwargs) -> Interaction:
    return make_interaction(
        command, options, kind=InteractionKind.AUTOCOMPLETE, focused=focused, **kwargs
    )


def make_message_command(command: str, message: Dict[str, Any], **kwargs) -> Interaction:
    """Message context-menu interaction targeting ``message``."""
    return make_interaction(
        command,
        command_kind=CommandKind.MESSAGE,
        target_id=int(message["id"]),
        resolved={"messages": {str(message["id"]): message}},
        **kwargs,
    )


def contents(messages: Sequence[Any]) -> List[str]:
    return [m.content for m in messages]


@pytest.fixture
def transport():
    return FakeTransport()
