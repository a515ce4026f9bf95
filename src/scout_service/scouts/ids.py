"""Identifier generation for scouts and runs."""

from __future__ import annotations

import secrets
import time

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
SUFFIX_LENGTH = 9


def _random_suffix(length: int = SUFFIX_LENGTH) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def _new_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{_random_suffix()}"


def new_scout_id() -> str:
    return _new_id("scout")


def new_run_id() -> str:
    return _new_id("run")
