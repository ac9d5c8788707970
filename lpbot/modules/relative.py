"""/relative: show a time of day in every reader's own timezone."""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..commands import BotCommand, CommandContext, CommandResponse, CommandTable, option
from ..completion import CompletionChain
from ..exceptions import CommandError
from ..registry import Module

# 7:30pm EST, 19h30 CET, 7 pm pst, 1930 UTC
_TIME = re.compile(r"(?i)([0-2]?[0-9])(?:[h: ]?([0-5]?[0-9]))? *(am|pm)? *(\w+)")

# UTC offsets in minutes; ambiguous abbreviations take their most common meaning
TIMEZONES = {
    "UTC": 0,
    "GMT": 0,
    "WET": 0,
    "WEST": 60,
    "BST": 60,
    "IST": 330,
    "CET": 60,
    "CEST": 120,
    "EET": 120,
    "EEST": 180,
    "MSK": 180,
    "GST": 240,
    "PKT": 300,
    "ICT": 420,
    "WIB": 420,
    "SGT": 480,
    "HKT": 480,
    "AWST": 480,
    "PHT": 480,
    "JST": 540,
    "KST": 540,
    "ACST": 570,
    "ACDT": 630,
    "AEST": 600,
    "AEDT": 660,
    "NZST": 720,
    "NZDT": 780,
    "HST": -600,
    "AKST": -540,
    "AKDT": -480,
    "PST": -480,
    "PDT": -420,
    "MST": -420,
    "MDT": -360,
    "CST": -360,
    "CDT": -300,
    "EST": -300,
    "EDT": -240,
    "AST": -240,
    "ADT": -180,
    "NST": -210,
    "NDT": -150,
    "BRT": -180,
    "ART": -180,
}


def parse_time(time: str, now: Optional[datetime] = None) -> datetime:
    """Next occurrence of a time of day given with a timezone abbreviation.

    The result is in the named timezone and is never before ``now``
    (seconds are carried over from ``now``).

    Raises:
        CommandError: the time cannot be read, the hour is out of range
            for a 12 or 24 hour clock, or the timezone is unknown.
    """
    match = _TIME.search(time)
    if match is None:
        raise CommandError(f"Invalid time {time}", command=Relative.NAME)

    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    ampm = match.group(3).lower() if match.group(3) else None
    tz_abbr = match.group(4)

    if ampm is not None and (hour > 12 or hour == 0) or ampm is None and hour >= 24:
        raise CommandError(f"Invalid time {time}", command=Relative.NAME)
    if ampm == "am" and hour == 12:
        hour = 0
    elif ampm == "pm" and hour != 12:
        hour += 12

    offset = TIMEZONES.get(tz_abbr.upper())
    if offset is None:
        raise CommandError("Invalid timezone", command=Relative.NAME)
    tz = timezone(timedelta(minutes=offset))

    if now is None:
        now = datetime.now(timezone.utc)
    now_tz = now.astimezone(tz)
    at = now_tz.replace(hour=hour, minute=minute)
    if at < now_tz:
        at += timedelta(days=1)
    return at


class Relative(BotCommand):
    NAME = "relative"
    DESCRIPTION = "Convert a time of day to your local timezone"

    time: str = option(description="Time of day with timezone, e.g. 7:30pm EST")

    async def run(self, ctx: CommandContext) -> CommandResponse:
        ts = int(parse_time(self.time).timestamp())
        return CommandResponse.public(f"{self.time} is at <t:{ts}:t> (in <t:{ts}:R>)")


class ModRelative(Module):
    def register(self, commands: CommandTable, completions: CompletionChain) -> None:
        commands.register(Relative)
