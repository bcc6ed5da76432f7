"""Market-value oracles.

Main exports:
- MarketOracle: Interface every oracle implements
- ClaudeOracle: LLM-backed estimates via the Anthropic API
- MedianOracle: Deterministic median-of-comparables heuristic
- ResilientOracle: Retry + fallback wrapper (use this in pipelines)
- build_oracle: Construct the configured oracle chain
"""

import logging
from typing import Optional

from deal_finder.config import Settings

from .base import MarketOracle, OracleEstimate, validate_estimate
from .claude import ClaudeOracle
from .composite import ResilientOracle
from .heuristic import MedianOracle

logger = logging.getLogger(__name__)


def build_oracle(settings: Settings, primary: Optional[MarketOracle] = None) -> ResilientOracle:
    """Build the oracle chain from settings.

    Without an API key the median heuristic is the primary oracle.
    """
    if primary is None:
        if settings.oracle_api_key:
            primary = ClaudeOracle(
                api_key=settings.oracle_api_key,
                model=settings.oracle_model,
                max_tokens=settings.oracle_max_tokens,
                timeout=settings.oracle_timeout,
            )
        else:
            logger.warning("No oracle API key configured, using median heuristic only")
            primary = MedianOracle()

    return ResilientOracle(
        primary,
        retry_attempts=settings.oracle_retry_attempts,
        backoff_min=settings.oracle_backoff_min,
        backoff_max=settings.oracle_backoff_max,
        enable_fallback=settings.oracle_fallback_enabled,
    )


__all__ = [
    "ClaudeOracle",
    "MarketOracle",
    "MedianOracle",
    "OracleEstimate",
    "ResilientOracle",
    "build_oracle",
    "validate_estimate",
]
