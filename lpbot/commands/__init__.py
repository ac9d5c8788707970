"""Command framework: identity, descriptors, typed options."""

from .base import (
    CommandContext,
    CommandDescriptor,
    CommandKey,
    CommandResponse,
    CommandTable,
    Permissions,
    Visibility,
)
from .options import BotCommand, ChannelId, RoleId, UserId, option

__all__ = [
    "BotCommand",
    "ChannelId",
    "CommandContext",
    "CommandDescriptor",
    "CommandKey",
    "CommandResponse",
    "CommandTable",
    "Permissions",
    "RoleId",
    "UserId",
    "Visibility",
    "option",
]
