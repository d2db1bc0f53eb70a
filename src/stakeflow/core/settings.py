"""Runtime settings for delegation wizards.

Settings come from environment variables so deployments can tune the wizard
without code changes, and tests can pin values with :func:`override`::

    from stakeflow.core import settings

    with settings.override(debounce_ms=0):
        ...

Recognised variables:

``STAKEFLOW_DEBOUNCE_MS``
    Quiet period after the last identity keystroke before a lookup (ms).
``STAKEFLOW_MIN_DELEGATION``
    Minimum delegation amount, in display units.
``STAKEFLOW_DENOM``
    Display denomination.
``STAKEFLOW_IDENTITY_KEY_BYTES``
    Decoded length of a well-formed node identity key.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, fields, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Final

__all__ = ["WizardSettings", "current", "override"]

logger = logging.getLogger(__name__)

_PREFIX: Final = "STAKEFLOW_"


@dataclass(frozen=True)
class WizardSettings:
    debounce_ms: int = 500
    min_delegation: Decimal = Decimal(10)
    denom: str = "nym"
    identity_key_bytes: int = 32

    @property
    def debounce_seconds(self) -> float:
        return max(0, self.debounce_ms) / 1000.0


_DEFAULTS: Final = WizardSettings()

_OVERRIDE_STACK: list[dict[str, Any]] = []


def _coerce(name: str, raw: str) -> Any:
    default = getattr(_DEFAULTS, name)
    if isinstance(default, Decimal):
        return Decimal(raw.strip())
    if isinstance(default, int):
        return int(raw.strip())
    return raw.strip().lower()


def _from_env() -> WizardSettings:
    values: dict[str, Any] = {}
    for entry in fields(WizardSettings):
        raw = os.getenv(_PREFIX + entry.name.upper())
        if raw is None or not raw.strip():
            continue
        try:
            values[entry.name] = _coerce(entry.name, raw)
        except (InvalidOperation, ValueError):
            logger.warning("Ignoring malformed setting %s=%r", _PREFIX + entry.name.upper(), raw)
    return replace(_DEFAULTS, **values)


def current() -> WizardSettings:
    """Return settings from the environment with any active overrides applied."""

    resolved = _from_env()
    for overrides in _OVERRIDE_STACK:
        resolved = replace(resolved, **overrides)
    return resolved


@contextmanager
def override(**values: Any):
    """Temporarily override settings within the context.

    Overrides are stacked, so nested contexts behave predictably.
    """

    known = {entry.name for entry in fields(WizardSettings)}
    unknown = set(values) - known
    if unknown:
        raise TypeError(f"unknown settings: {', '.join(sorted(unknown))}")
    if "min_delegation" in values:
        values["min_delegation"] = Decimal(values["min_delegation"])
    _OVERRIDE_STACK.append(values)
    try:
        yield
    finally:
        _OVERRIDE_STACK.pop()
