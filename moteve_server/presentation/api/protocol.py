"""
Wire format of the MCA endpoints.

Header names and literal replies are part of the contract with deployed
mobile clients and must not change.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from ...core.exceptions import InvalidArgument, MoteveError

HEADER_AUTH = "Moteve-Auth"
HEADER_TOKEN = "Moteve-Token"
HEADER_SEQUENCE = "Moteve-Sequence"
HEADER_PART = "Moteve-Part"
HEADER_ERROR = "Moteve-Error"

AUTH_ERROR = "AUTH_ERROR"
MISSING_TOKEN = "MISSING_TOKEN"
WRONG_TOKEN = "WRONG_TOKEN"

DELIMITER = "\\"
SEQUENCE_NEW = "new"
SEQUENCE_CLOSE_PREFIX = "close_"
DEFAULT_DEVICE_DESCRIPTION = "MCA"


@dataclass(frozen=True)
class Credentials:
    """Contents of a Moteve-Auth header."""
    email: str
    password: str
    description: str


def parse_register_auth(value: str) -> Optional[Credentials]:
    """
    Parse ``email\\password\\description``.

    The password sits between the first and the last backslash, so it may
    itself contain backslashes. Returns None for malformed values.
    """
    first = value.find(DELIMITER)
    last = value.rfind(DELIMITER)
    if first < 1 or last < 1 or first == last:
        return None

    return Credentials(
        email=value[:first],
        password=value[first + 1:last],
        description=value[last + 1:],
    )


def parse_upload_auth(value: str) -> Optional[Credentials]:
    """
    Parse ``email\\password`` with an optional ``\\description`` suffix.
    """
    if value.count(DELIMITER) >= 2:
        return parse_register_auth(value)

    email, sep, password = value.partition(DELIMITER)
    if not sep or not email:
        return None

    return Credentials(email=email, password=password,
                       description=DEFAULT_DEVICE_DESCRIPTION)


def parse_sequence(value: str) -> Tuple[str, str]:
    """
    Classify a Moteve-Sequence header.

    Returns:
        ``("new", "")``, ``("close", sequence_id)`` or ``("part", sequence_id)``
    """
    if value == SEQUENCE_NEW:
        return "new", ""
    if value.startswith(SEQUENCE_CLOSE_PREFIX):
        return "close", value[len(SEQUENCE_CLOSE_PREFIX):]
    return "part", value


def parse_part_number(value: str) -> int:
    """Plain ASCII digits only; signs and underscores are rejected."""
    digits = value.strip()
    if not (digits.isascii() and digits.isdigit()):
        raise InvalidArgument(f"Invalid {HEADER_PART} value: {value!r}")
    return int(digits)


def format_group_names(names: Iterable[str]) -> str:
    """Each group name followed by a backslash."""
    return "".join(f"{name}{DELIMITER}" for name in names)


def format_error(error: MoteveError) -> str:
    return f"ERROR\n{error.message}\n"
