"""
Join-code generation.
"""
from __future__ import annotations

import logging
import secrets
from typing import Callable, Optional

from splitsmart.errors import CodeGenerationError

logger = logging.getLogger(__name__)

# no 0/O/1/I
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def random_code(length: int = 6, choice: Callable[[str], str] = secrets.choice) -> str:
    return "".join(choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    """Codes are matched case-insensitively; the store keeps them upper-case."""
    return (code or "").strip().upper()


def generate_code(
    exists: Callable[[str], bool],
    length: int = 6,
    max_attempts: int = 5,
    make: Optional[Callable[[], str]] = None,
) -> str:
    """Return a code for which ``exists`` is False.

    Raises :class:`CodeGenerationError` after *max_attempts* collisions;
    a colliding code is never handed out.
    """
    make = make or (lambda: random_code(length))
    for attempt in range(1, max_attempts + 1):
        code = make()
        if not exists(code):
            return code
        logger.warning("Join code collision (%d/%d): %s", attempt, max_attempts, code)
    raise CodeGenerationError(f"Could not generate a unique join code after {max_attempts} attempts")
