"""
Line lexer for Spikes simulator logs.

Every simulator log line has the shape::

    <preamble> - <command>; <key1>: <value1>; <key2>: <value2>; ...

``parse_line`` drops the preamble, splits the body on ``"; "`` and returns
the command plus a flat key→value map of untyped strings.  The lexer is
advisory: it never raises, it returns ``None`` for lines without a body.
Extractors call it only after a line has passed their shape check.

Example::

    >>> parse_line("t0 - fire; id: n1; timestamp: 74.0 ms").attributes
    {'id': 'n1', 'timestamp': '74.0 ms'}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from spikes_config import Command

logger = logging.getLogger("spikes.lexer")

PREAMBLE_SEPARATOR = " - "
FRAGMENT_SEPARATOR = "; "
KEY_VALUE_SEPARATOR = ": "

_COMMANDS = {c.value: c for c in Command}


@dataclass(frozen=True)
class ParsedLine:
    """Command name and raw attributes of one log line.

    Attributes:
        command: Text of the first body fragment (e.g. ``"fire"``).
        attributes: Key→value strings, units still attached.
    """
    command: str
    attributes: Dict[str, str] = field(default_factory=dict)

    @property
    def kind(self) -> Optional[Command]:
        """The command as a ``Command`` member, or None if unrecognised."""
        return _COMMANDS.get(self.command)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.attributes.get(key, default)


def parse_line(line: str) -> Optional[ParsedLine]:
    """Split one raw log line into its command and attribute map.

    Returns None when the line has no `` - `` separator or no
    ``;``-delimited body after it.
    """
    text = line.rstrip("\r\n")
    _, sep, body = text.partition(PREAMBLE_SEPARATOR)
    if not sep or ";" not in body:
        return None

    fragments = body.rstrip().rstrip(";").split(FRAGMENT_SEPARATOR)
    attributes: Dict[str, str] = {}
    for fragment in fragments[1:]:
        key, sep, value = fragment.partition(KEY_VALUE_SEPARATOR)
        if not sep:
            # e.g. the repeated section name in "topology; topology; ..."
            logger.debug("Skipping fragment without a value: %r", fragment)
            continue
        attributes[key] = value
    return ParsedLine(command=fragments[0].strip(), attributes=attributes)
