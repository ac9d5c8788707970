"""Typed command arguments.

A command is a pydantic model whose fields are its options. The model
class carries the command's name, kind, description and default
permissions as class variables, builds the platform option definitions
from its fields, and decodes an interaction into a validated instance.

Example:
    class Quote(BotCommand):
        NAME = "quote"
        DESCRIPTION = "Retrieve a quote"

        number: Optional[int] = option(None, description="Quote number", ge=1)
        user: Optional[UserId] = option(None, description="Quotes from this user")

        async def run(self, ctx):
            ...
"""

from __future__ import annotations

import typing
from typing import (
    TYPE_CHECKING,
    Annotated,
    Any,
    ClassVar,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import OptionError
from ..interaction import CommandKind, OptionType
from .base import CommandKey, CommandResponse, Permissions

if TYPE_CHECKING:
    from ..interaction import Interaction
    from .base import CommandContext

# Mention-style options decode to plain ids
UserId = Annotated[int, OptionType.USER]
RoleId = Annotated[int, OptionType.ROLE]
ChannelId = Annotated[int, OptionType.CHANNEL]

_TYPE_MAP = {
    str: OptionType.STRING,
    int: OptionType.INTEGER,
    bool: OptionType.BOOLEAN,
    float: OptionType.NUMBER,
}


def option(
    default: Any = ...,
    *,
    description: str,
    autocomplete: bool = False,
    choices: Optional[Sequence[Tuple[str, Any]]] = None,
    **constraints: Any,
) -> Any:
    """Declare a command option.

    Args:
        default: Default value; omit for a required option.
        description: Help text shown by the platform.
        autocomplete: Whether the platform should ask for suggestions.
        choices: Fixed (name, value) choices.
        **constraints: pydantic constraints (``ge``, ``le``, ``max_length``...),
            which are also published as platform limits.
    """
    extra: Dict[str, Any] = {}
    if autocomplete:
        extra["autocomplete"] = True
    if choices:
        extra["choices"] = [{"name": name, "value": value} for name, value in choices]
    return Field(default, description=description, json_schema_extra=extra or None, **constraints)


def _unwrap(annotation: Any) -> Tuple[Any, List[Any]]:
    """Strip Optional and Annotated, returning the base type and metadata."""
    metadata: List[Any] = []
    while True:
        origin = typing.get_origin(annotation)
        if origin is Annotated:
            annotation, *extra = typing.get_args(annotation)
            metadata.extend(extra)
        elif origin is Union:
            args = [a for a in typing.get_args(annotation) if a is not type(None)]
            if len(args) != 1:
                raise TypeError(f"Unsupported option type {annotation!r}")
            annotation = args[0]
        else:
            return annotation, metadata


def _option_type(annotation: Any, metadata: Sequence[Any]) -> OptionType:
    base, inner = _unwrap(annotation)
    for marker in list(metadata) + inner:
        if isinstance(marker, OptionType):
            return marker
    try:
        return _TYPE_MAP[base]
    except KeyError:
        raise TypeError(f"Unsupported option type {annotation!r}") from None


class BotCommand(BaseModel):
    """Base class for commands.

    Subclasses set NAME (and usually DESCRIPTION), declare options as
    fields and implement ``run``.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    NAME: ClassVar[str] = ""
    DESCRIPTION: ClassVar[str] = ""
    KIND: ClassVar[CommandKind] = CommandKind.CHAT_INPUT
    PERMISSIONS: ClassVar[Optional[Permissions]] = None

    @classmethod
    def key(cls) -> CommandKey:
        return CommandKey(cls.NAME, cls.KIND)

    @classmethod
    def build_options(cls) -> List[Dict[str, Any]]:
        """Option definitions, required options first."""
        options = []
        for name, info in cls.model_fields.items():
            opt: Dict[str, Any] = {
                "type": int(_option_type(info.annotation, info.metadata)),
                "name": name,
                "description": info.description or name,
                "required": info.is_required(),
            }
            for constraint in info.metadata:
                for attr, key in (
                    ("ge", "min_value"),
                    ("le", "max_value"),
                    ("min_length", "min_length"),
                    ("max_length", "max_length"),
                ):
                    value = getattr(constraint, attr, None)
                    if value is not None:
                        opt[key] = value
            if isinstance(info.json_schema_extra, dict):
                opt.update(info.json_schema_extra)
            options.append(opt)
        # Platform rejects optional options placed before required ones
        options.sort(key=lambda o: not o["required"])
        return options

    @classmethod
    def from_interaction(cls, interaction: "Interaction") -> "BotCommand":
        """Decode and validate the interaction's options."""
        try:
            return cls.model_validate(interaction.option_values())
        except ValidationError as exc:
            error = exc.errors()[0]
            name = ".".join(str(part) for part in error.get("loc", ())) or None
            if error.get("type") == "missing":
                message = f"Missing option {name}"
            else:
                message = f"Invalid option {name}: {error.get('msg')}"
            raise OptionError(message, option=name, command=cls.NAME) from exc

    async def run(self, ctx: "CommandContext") -> CommandResponse:
        raise NotImplementedError
