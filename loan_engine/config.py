"""Engine configuration.

Tunable constants live in ``EngineSettings``. The defaults reproduce the
figures used on borrower statements; ``load_settings`` lets an operator
override them through ``LOAN_ENGINE_*`` environment variables, the same way
the web app reads its database URL and secret key.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Optional

from .utils import decimal_from_str

DAYS_PER_YEAR = Decimal(365)


@dataclass(frozen=True)
class EngineSettings:
    """Constants shared by the schedule, reconciliation and waterfall code.

    Attributes
    ----------
    redistribution_window_days: int
        How far (in days) a repayment may be moved from its own date when it
        is redistributed into an empty schedule period.
    rolled_up_extension_periods: int
        Interest-only rows appended after a Rolled-Up loan's maturity row.
    roll_up_month_days: Decimal
        Average month length used to turn a roll-up length in months into
        days.
    paid_tolerance: Decimal
        A row counts as paid once it is within this amount of its total.
    advance_final_period_days: int
        Length of the last period of an interest-in-advance loan when its
        schedule row carries no calculation days.
    max_workers: Optional[int]
        Thread pool size for batch recomputation (``None`` lets the executor
        choose).
    """

    redistribution_window_days: int = 60
    rolled_up_extension_periods: int = 12
    roll_up_month_days: Decimal = Decimal("30.44")
    paid_tolerance: Decimal = Decimal("0.01")
    advance_final_period_days: int = 30
    max_workers: Optional[int] = None


DEFAULT_SETTINGS = EngineSettings()


def _int_env(environ: Mapping[str, str], name: str, default: Optional[int]) -> Optional[int]:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _decimal_env(environ: Mapping[str, str], name: str, default: Decimal) -> Decimal:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return decimal_from_str(raw)


def load_settings(environ: Optional[Mapping[str, str]] = None) -> EngineSettings:
    """Build settings from environment variables, falling back to defaults."""
    env = os.environ if environ is None else environ
    d = DEFAULT_SETTINGS
    return EngineSettings(
        redistribution_window_days=_int_env(
            env, "LOAN_ENGINE_REDISTRIBUTION_WINDOW_DAYS", d.redistribution_window_days
        ),
        rolled_up_extension_periods=_int_env(
            env, "LOAN_ENGINE_ROLLED_UP_EXTENSION_PERIODS", d.rolled_up_extension_periods
        ),
        roll_up_month_days=_decimal_env(env, "LOAN_ENGINE_ROLL_UP_MONTH_DAYS", d.roll_up_month_days),
        paid_tolerance=_decimal_env(env, "LOAN_ENGINE_PAID_TOLERANCE", d.paid_tolerance),
        advance_final_period_days=_int_env(
            env, "LOAN_ENGINE_ADVANCE_FINAL_PERIOD_DAYS", d.advance_final_period_days
        ),
        max_workers=_int_env(env, "LOAN_ENGINE_MAX_WORKERS", d.max_workers),
    )
