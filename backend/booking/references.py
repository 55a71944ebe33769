"""Human-readable reservation references such as ``MOT7K2QX9PA``."""

import secrets
from collections.abc import Callable

from backend.core import config

# No 0/O or 1/I so references survive being read out over the phone.
REFERENCE_ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZ"


def generate_reference(
    prefix: str = config.RESERVATION_REFERENCE_PREFIX,
    length: int = config.RESERVATION_REFERENCE_LENGTH,
) -> str:
    return prefix + "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(length))


ReferenceGenerator = Callable[[], str]
