"""
Reader for BIND-style zone files.

cPanel ships one zone file per domain in ``dnszones/``. Only the subset
of the master file format those files use is understood: ``$TTL`` and
``$ORIGIN`` directives, comments, parenthesised multi-line records,
omitted owners, optional TTL and class fields.
"""

import re
import shlex
from typing import List, Optional

from hosting_migrator.core.exceptions import ParseError
from hosting_migrator.models.manifest import DnsRecord, DnsZone

RECORD_TYPES = frozenset({
    "A", "AAAA", "CNAME", "MX", "NS", "TXT", "SOA", "SRV", "CAA", "PTR", "SPF",
})

CLASSES = frozenset({"IN", "CH", "HS"})

_TTL_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}


def parse_ttl(value: str) -> int:
    """Parse a TTL such as ``3600`` or ``1h30m``."""
    if value.isdigit():
        return int(value)
    parts = re.findall(r"(\d+)([smhdwSMHDW])", value)
    if not parts or "".join(n + u for n, u in parts) != value:
        raise ValueError(f"Invalid TTL: {value}")
    return sum(int(n) * _TTL_UNITS[u.lower()] for n, u in parts)


def _strip_comment(line: str) -> str:
    in_quotes = False
    for index, char in enumerate(line):
        if char == '"':
            in_quotes = not in_quotes
        elif char == ';' and not in_quotes:
            return line[:index]
    return line


def _logical_lines(text: str) -> List[str]:
    """Join parenthesised continuation lines into single logical lines."""
    lines = []
    buffer = ""
    depth = 0
    for raw in text.splitlines():
        line = _strip_comment(raw)
        if depth == 0:
            buffer = line
        else:
            buffer += " " + line.strip()
        depth += line.count("(") - line.count(")")
        if depth <= 0:
            depth = 0
            if buffer.strip():
                lines.append(buffer.replace("(", " ").replace(")", " "))
            buffer = ""
    if depth > 0:
        raise ParseError("Unbalanced parentheses in zone file")
    return lines


def _absolute(name: str, origin: str) -> str:
    if name == "@":
        return origin
    if name.endswith("."):
        return name.rstrip(".")
    return f"{name}.{origin}"


def _is_ttl(token: str) -> bool:
    try:
        parse_ttl(token)
        return True
    except ValueError:
        return False


def parse_zone_file(text: str, origin: str, default_ttl: Optional[int] = None) -> DnsZone:
    """
    Parse zone file text into a DnsZone.

    Record names are returned fully qualified without the trailing dot.

    Raises:
        ParseError: If a record line cannot be understood
    """
    origin = origin.rstrip(".").lower()
    zone = DnsZone(domain=origin, ttl=default_ttl)
    current_ttl = default_ttl
    last_owner = origin

    for line in _logical_lines(text):
        owner_omitted = line[:1].isspace()
        try:
            tokens = shlex.split(line, posix=True)
        except ValueError as e:
            raise ParseError(f"Malformed zone file line: {line.strip()}") from e
        if not tokens:
            continue

        directive = tokens[0].upper()
        if directive == "$TTL":
            current_ttl = parse_ttl(tokens[1])
            zone.ttl = current_ttl
            continue
        if directive == "$ORIGIN":
            origin = tokens[1].rstrip(".").lower()
            continue
        if directive.startswith("$"):
            continue

        if owner_omitted:
            owner = last_owner
        else:
            owner = _absolute(tokens.pop(0), origin)
            last_owner = owner

        ttl = None
        while tokens and tokens[0].upper() not in RECORD_TYPES:
            token = tokens.pop(0)
            if token.upper() in CLASSES:
                continue
            if _is_ttl(token):
                ttl = parse_ttl(token)
                continue
            raise ParseError(f"Unexpected token '{token}' in zone file line: {line.strip()}")

        if not tokens:
            raise ParseError(f"Missing record type in zone file line: {line.strip()}")

        record_type = tokens.pop(0).upper()
        priority = None
        if record_type in ("MX", "SRV") and tokens and tokens[0].isdigit():
            priority = int(tokens.pop(0))

        if not tokens:
            raise ParseError(f"Missing record data in zone file line: {line.strip()}")

        zone.records.append(DnsRecord(
            name=owner,
            type=record_type,
            value=" ".join(tokens),
            ttl=ttl if ttl is not None else current_ttl,
            priority=priority,
        ))

    return zone
