"""Typed lookups for ``WATCHSYNC_*`` settings.

Each helper reads ``os.environ`` unless an explicit ``env`` mapping is given,
which is how config is loaded from plain dicts in tests. Unset, blank and
unparsable values resolve to the caller's default.
"""

from __future__ import annotations

import math
import os
from typing import Callable, Iterable, Mapping, Optional, TypeVar

T = TypeVar("T")

EnvMapping = Mapping[str, str]

_BOOL_WORDS = {
    "1": True,
    "true": True,
    "yes": True,
    "on": True,
    "0": False,
    "false": False,
    "no": False,
    "off": False,
}


def _source(env: Optional[EnvMapping]) -> EnvMapping:
    return os.environ if env is None else env


def _parsed(name: str, default: T, parse: Callable[[str], T], env: Optional[EnvMapping]) -> T:
    text = env_text(name, env)
    if text is None:
        return default
    try:
        return parse(text)
    except ValueError:
        return default


def _bool_word(text: str) -> bool:
    try:
        return _BOOL_WORDS[text.lower()]
    except KeyError:
        raise ValueError(text) from None


def _finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(text)
    return value


def env_str(name: str, default: Optional[str] = None, env: Optional[EnvMapping] = None) -> Optional[str]:
    """Raw value, untouched; separators may legitimately contain spaces."""

    value = _source(env).get(name)
    return value if value is not None else default


def env_text(name: str, env: Optional[EnvMapping] = None) -> Optional[str]:
    """Stripped value, or None when unset or blank."""

    value = _source(env).get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def env_bool(name: str, default: bool = False, env: Optional[EnvMapping] = None) -> bool:
    return _parsed(name, default, _bool_word, env)


def env_int(name: str, default: int, env: Optional[EnvMapping] = None) -> int:
    return _parsed(name, default, lambda text: int(text, 10), env)


def env_float(name: str, default: float, env: Optional[EnvMapping] = None) -> float:
    return _parsed(name, default, _finite_float, env)


def env_choice(name: str, choices: Iterable[str], default: str, env: Optional[EnvMapping] = None) -> str:
    text = env_text(name, env)
    if text is None:
        return default
    canonical = {choice.lower(): choice for choice in choices}
    return canonical.get(text.lower(), default)


__all__ = ["EnvMapping", "env_bool", "env_choice", "env_float", "env_int", "env_str", "env_text"]
