"""
Runtime configuration for cashflow runs.

Values come from the environment first and may be overridden by CLI flags:

    CASHFLOW_SELF_DEBT_POLICY  - tolerate | reject (default: tolerate)
    CASHFLOW_OUTPUT_FORMAT     - table | json (default: table)
    CASHFLOW_LOG_LEVEL         - logging level name (default: WARNING)
    CASHFLOW_TREASURER_LABEL   - role label for participant 0 (default: Treasurer)
    CASHFLOW_HTTP_TIMEOUT      - seconds to wait for http(s) input (default: 30)
"""

import logging
import math
import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from cashflow.errors import ConfigurationError


SELF_DEBT_TOLERATE = "tolerate"
SELF_DEBT_REJECT = "reject"
VALID_SELF_DEBT_POLICIES = frozenset({SELF_DEBT_TOLERATE, SELF_DEBT_REJECT})

VALID_OUTPUT_FORMATS = frozenset({"table", "json"})

# Level names accepted by the per-component _log() helpers
LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(frozen=True)
class SettleConfig:
    """Knobs that shape ingest and presentation; the planner itself has none."""
    self_debt_policy: str = SELF_DEBT_TOLERATE
    output_format: str = "table"
    log_level: str = "WARNING"
    treasurer_label: str = "Treasurer"
    http_timeout: float = 30.0

    def __post_init__(self):
        if self.self_debt_policy not in VALID_SELF_DEBT_POLICIES:
            raise ConfigurationError(
                f"invalid self-debt policy {self.self_debt_policy!r} "
                f"(expected one of {sorted(VALID_SELF_DEBT_POLICIES)})"
            )
        if self.output_format not in VALID_OUTPUT_FORMATS:
            raise ConfigurationError(
                f"invalid output format {self.output_format!r} "
                f"(expected one of {sorted(VALID_OUTPUT_FORMATS)})"
            )
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigurationError(f"invalid log level {self.log_level!r}")
        if not self.treasurer_label.strip():
            raise ConfigurationError("treasurer label must not be empty")
        if not math.isfinite(self.http_timeout) or self.http_timeout <= 0:
            raise ConfigurationError(f"http timeout must be a positive finite number, got {self.http_timeout}")

    @property
    def rejects_self_debts(self) -> bool:
        return self.self_debt_policy == SELF_DEBT_REJECT

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.log_level.upper())

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SettleConfig":
        env = os.environ if environ is None else environ
        return cls(
            self_debt_policy=env.get("CASHFLOW_SELF_DEBT_POLICY", SELF_DEBT_TOLERATE).strip().lower(),
            output_format=env.get("CASHFLOW_OUTPUT_FORMAT", "table").strip().lower(),
            log_level=env.get("CASHFLOW_LOG_LEVEL", "WARNING").strip(),
            treasurer_label=env.get("CASHFLOW_TREASURER_LABEL", "Treasurer"),
            http_timeout=_env_float(env, "CASHFLOW_HTTP_TIMEOUT", 30.0),
        )

    def with_overrides(self, **overrides) -> "SettleConfig":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from None
