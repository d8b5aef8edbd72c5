"""Deployment environment, used to pick logging defaults.

Read once from ``DOCLAYER_ENV``, then ``APP_ENV``; unset means local.
"""

from __future__ import annotations

import os
import warnings
from enum import StrEnum
from functools import cache

ENV_VARS = ("DOCLAYER_ENV", "APP_ENV")


class Env(StrEnum):
    LOCAL = "local"
    DEV = "dev"
    TEST = "test"
    PROD = "prod"


ALIASES: dict[str, Env] = {
    "development": Env.DEV,
    "testing": Env.TEST,
    "ci": Env.TEST,
    "production": Env.PROD,
}


@cache
def get_env() -> Env:
    name, raw = next(((var, os.environ[var]) for var in ENV_VARS if os.environ.get(var)), (None, ""))
    key = raw.strip().lower()
    if not key:
        return Env.LOCAL
    if key in ALIASES:
        return ALIASES[key]
    try:
        return Env(key)
    except ValueError:
        warnings.warn(f"{name}={raw!r} is not a known environment, using 'local'", RuntimeWarning, stacklevel=2)
        return Env.LOCAL


def is_prod() -> bool:
    return get_env() is Env.PROD
