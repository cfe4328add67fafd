import logging
import random
import string
from typing import Callable

from .errors import CodeGenerationFailed

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_room_code(length=4, alphabet=CODE_ALPHABET, rng=random) -> str:
    """Generate a short, shareable room code. Uniqueness is the caller's job."""
    return ''.join(rng.choices(alphabet, k=length))


def normalize_code(code: str) -> str:
    return code.strip().upper()


def reserve_room_code(claim: Callable[[str], bool], length=4, max_attempts=50, rng=random) -> str:
    """Draw codes until ``claim(code)`` accepts one.

    ``claim`` must check and register the code atomically, so two rooms
    created at the same moment can never share a code.
    """
    for attempt in range(1, max_attempts + 1):
        code = generate_room_code(length, rng=rng)
        if claim(code):
            return code
        logger.warning(f"[code-collision] code={code} attempt={attempt}/{max_attempts}")
    raise CodeGenerationFailed(max_attempts)
