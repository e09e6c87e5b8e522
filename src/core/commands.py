"""Bot command parsing (core domain).

Parsing is kept free of Telethon types so it can be unit tested and reused
by any chat frontend.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

# (command, arguments, description) in the order shown by /help.
COMMAND_DESCRIPTIONS: List[Tuple[str, str, str]] = [
    ("track", "<name> <url>", "track a repository"),
    ("untrack", "<url>", "stop tracking a repository"),
    ("list", "", "list all tracked repositories"),
    ("help", "", "display this help message"),
]

KNOWN_COMMANDS = {name for name, _, _ in COMMAND_DESCRIPTIONS}

# Group chats address bots as /command@botname.
_COMMAND_RE = re.compile(r"^/(?P<name>[A-Za-z_]+)(?:@\w+)?(?:\s+(?P<rest>.*))?$", re.DOTALL)


@dataclass(frozen=True)
class Command:
    name: str
    args: List[str]

    @property
    def known(self) -> bool:
        return self.name in KNOWN_COMMANDS


@dataclass(frozen=True)
class TrackArgs:
    name: str
    url: str


def parse_command(text: str) -> Optional[Command]:
    """Return the command in ``text``, or None if it is not a command."""

    match = _COMMAND_RE.match(text.strip())
    if not match:
        return None
    rest = match.group("rest") or ""
    return Command(name=match.group("name").lower(), args=rest.split())


def parse_track_args(args: List[str]) -> Optional[TrackArgs]:
    """Split /track arguments into name and url.

    The url is always the last token; everything before it is the name, so
    names may contain spaces. A single token is taken as the url with an
    empty name.
    """

    if not args:
        return None
    return TrackArgs(name=" ".join(args[:-1]), url=args[-1])


def help_text() -> str:
    lines = ["These commands are supported:"]
    for name, arguments, description in COMMAND_DESCRIPTIONS:
        usage = f"/{name} {arguments}".rstrip()
        lines.append(f"{usage} - {description}")
    return "\n".join(lines)


def fallback_text(text: str) -> str:
    """Reply for anything that is not a known command."""

    if text.strip().startswith("/"):
        return help_text()
    return f"Sorry, I only work with commands.\n\n{help_text()}"
