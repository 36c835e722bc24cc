"""
Meridian 1.0 -- Engine configuration.

All tunables are read from environment variables with sensible defaults
so that changing them does not require code changes.  The dashboard loads
a root ``.env`` (python-dotenv) before calling :func:`load_settings`.

Extension points:
  - Per-symbol risk-free rate or dividend yield overrides
  - Fetch the risk-free rate from a Treasury feed instead of the env
"""

import os
from dataclasses import dataclass
from typing import Optional


# Default risk-free rate (5%), configurable via environment variable.
DEFAULT_RISK_FREE_RATE = float(os.environ.get("RISK_FREE_RATE", "0.05"))


@dataclass(frozen=True)
class EngineSettings:
    """Immutable runtime settings shared by the engine and the dashboard."""

    risk_free_rate: float = 0.05
    default_implied_vol: float = 0.25   # used when a leg carries no IV
    strike_width: float = 5.0           # spacing of template / chain strikes
    sweep_range_pct: float = 0.5        # P&L sweep: +/- 50 % around spot
    sweep_points: int = 201
    mc_iterations: int = 10_000
    mc_confidence_level: float = 0.68
    mock_price_fallback: bool = False   # random spot for unknown symbols
    random_seed: Optional[int] = None
    dashboard_port: int = 5050


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _env_float(key: str, default: str) -> float:
    """Read a float from an environment variable with a fallback default."""
    return float(os.environ.get(key, default))


def _env_int(key: str, default: str) -> int:
    return int(os.environ.get(key, default))


def _env_bool(key: str, default: str) -> bool:
    return os.environ.get(key, default).strip().lower() in ("1", "true", "yes")


def load_settings() -> EngineSettings:
    """Build :class:`EngineSettings` from the current environment.

    Raises:
        ValueError: If a variable is present but cannot be parsed.
    """
    seed = os.environ.get("RANDOM_SEED", "").strip()
    return EngineSettings(
        risk_free_rate=_env_float("RISK_FREE_RATE", "0.05"),
        default_implied_vol=_env_float("DEFAULT_IMPLIED_VOL", "0.25"),
        strike_width=_env_float("STRIKE_WIDTH", "5.0"),
        sweep_range_pct=_env_float("SWEEP_RANGE_PCT", "0.5"),
        sweep_points=_env_int("SWEEP_POINTS", "201"),
        mc_iterations=_env_int("MC_ITERATIONS", "10000"),
        mc_confidence_level=_env_float("MC_CONFIDENCE_LEVEL", "0.68"),
        mock_price_fallback=_env_bool("MOCK_PRICE_FALLBACK", "false"),
        random_seed=int(seed) if seed else None,
        dashboard_port=_env_int("DASHBOARD_PORT", "5050"),
    )
