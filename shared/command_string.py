"""
Command string codec.

Syntax: ``prefix[:arg]*`` where ``:`` separates parts and ``\\`` escapes the
next character (``\\:`` is a literal colon, ``\\\\`` a literal backslash).
Attribute-declared chains hold several command strings separated by ``,``;
``\\,`` keeps a literal comma inside one command.
"""

from __future__ import annotations

COMMAND_PREFIX = "--"
PART_DELIMITER = ":"
LIST_DELIMITER = ","
ESCAPE_CHAR = "\\"


def parse_command_string(command: str) -> list[str]:
    """Split a command string into its unescaped parts."""
    parts: list[str] = []
    current: list[str] = []
    i = 0
    while i < len(command):
        char = command[i]
        if char == ESCAPE_CHAR:
            if i + 1 < len(command):
                current.append(command[i + 1])
            i += 2
        elif char == PART_DELIMITER:
            parts.append("".join(current))
            current = []
            i += 1
        else:
            current.append(char)
            i += 1
    parts.append("".join(current))
    return parts


def escape_part(part: str) -> str:
    return part.replace(ESCAPE_CHAR, ESCAPE_CHAR * 2).replace(PART_DELIMITER, ESCAPE_CHAR + PART_DELIMITER)


def serialize_command_parts(parts: list[str] | tuple[str, ...]) -> str:
    """Inverse of ``parse_command_string`` for any list of parts."""
    return PART_DELIMITER.join(escape_part(str(part)) for part in parts)


def create_command_string(*parts: str) -> str:
    """Build a command string, adding the ``--`` marker to the first part if missing."""
    items = [str(part) for part in parts]
    if items and not items[0].startswith(COMMAND_PREFIX):
        items[0] = f"{COMMAND_PREFIX}{items[0]}"
    return serialize_command_parts(items)


def normalize_command_name(name: str) -> str:
    name = str(name or "").strip()
    if name and not name.startswith(COMMAND_PREFIX):
        return f"{COMMAND_PREFIX}{name}"
    return name


def _ends_with_escape(text: str) -> bool:
    trailing = len(text) - len(text.rstrip(ESCAPE_CHAR))
    return trailing % 2 == 1


def matches_prefix(command: str, prefix: str) -> bool:
    """True when ``prefix`` equals ``command`` or stops at an unescaped ``:`` boundary."""
    if not prefix or not command.startswith(prefix):
        return False
    if len(command) == len(prefix):
        return True
    if command[len(prefix)] != PART_DELIMITER:
        return False
    return not _ends_with_escape(prefix)


def command_remainder(command: str, prefix: str) -> str:
    """Raw (still escaped) argument section following a matched prefix."""
    if len(command) <= len(prefix):
        return ""
    return command[len(prefix) + 1:]


def split_command_list(value: str | None) -> list[str]:
    """Split a comma-separated list of command strings, honoring ``\\,``."""
    if not value:
        return []
    items: list[str] = []
    current: list[str] = []
    i = 0
    while i < len(value):
        char = value[i]
        if char == ESCAPE_CHAR and i + 1 < len(value) and value[i + 1] == LIST_DELIMITER:
            current.append(LIST_DELIMITER)
            i += 2
            continue
        if char == ESCAPE_CHAR and i + 1 < len(value):
            # Other escapes belong to the command string itself.
            current.append(value[i:i + 2])
            i += 2
            continue
        if char == LIST_DELIMITER:
            items.append("".join(current))
            current = []
        else:
            current.append(char)
        i += 1
    items.append("".join(current))
    return [item.strip() for item in items if item.strip()]
