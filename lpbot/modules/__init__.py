"""Feature modules and the startup build."""

from typing import Dict, Iterable, Type

import structlog

from ..config import Config
from ..exceptions import ConfigurationError
from ..registry import BotState, Module, RegistryBuilder
from .autoreact import ModAutoreact
from .birthdays import ModBirthdays
from .database import Database
from .lastfm import Lastfm
from .lp import ModLp
from .quotes import ModQuotes
from .ready_poll import ModPoll
from .relative import ModRelative

logger = structlog.get_logger("lpbot.modules")

# Names accepted in the ``modules`` setting
AVAILABLE_MODULES: Dict[str, Type[Module]] = {
    "lp": ModLp,
    "quotes": ModQuotes,
    "ready_poll": ModPoll,
    "birthdays": ModBirthdays,
    "autoreact": ModAutoreact,
    "relative": ModRelative,
}


async def build_state(config: Config, prebuilt: Iterable[Module] = ()) -> BotState:
    """Build every enabled module and freeze the result.

    Args:
        config: Loaded configuration.
        prebuilt: Modules constructed ahead of time; they are installed
            first and are not constructed again.

    Raises:
        ConfigurationError: an enabled module name is unknown, or a
            module needs a setting that is missing.
        ModuleError: a module could not be built.
    """
    builder = RegistryBuilder(config)
    for instance in prebuilt:
        builder = await builder.with_instance(instance)
    for name in config.enabled_modules:
        module_cls = AVAILABLE_MODULES.get(name)
        if module_cls is None:
            raise ConfigurationError(f"Unknown module {name}", setting_name="modules")
        builder = await builder.with_module(module_cls)
    state = builder.build()
    logger.info(
        "modules_built",
        modules=[type(m).__name__ for m in state.modules.instances()],
        commands=len(state.commands),
        resolvers=len(state.completions),
    )
    return state


__all__ = [
    "AVAILABLE_MODULES",
    "Database",
    "Lastfm",
    "ModAutoreact",
    "ModBirthdays",
    "ModLp",
    "ModPoll",
    "ModQuotes",
    "ModRelative",
    "build_state",
]
