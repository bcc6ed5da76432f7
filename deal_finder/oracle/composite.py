"""Resilient oracle with retry and deterministic fallback."""

import dataclasses
import logging
from typing import Optional

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from deal_finder.analysis.models import ComparableSet
from deal_finder.errors import OracleUnavailable
from deal_finder.validation import Listing

from .base import MarketOracle, OracleEstimate, validate_estimate
from .heuristic import MedianOracle

logger = logging.getLogger(__name__)


class ResilientOracle(MarketOracle):
    """Oracle wrapper with retries and automatic fallback.

    The primary oracle is retried with exponential backoff, and an answer
    without a usable market value counts as a failed attempt. If it keeps
    failing, the median heuristic answers instead (when enabled), and only
    when both fail is OracleUnavailable raised.

    Usage:
        oracle = ResilientOracle(ClaudeOracle(api_key=...))
        estimate = oracle.estimate(target, comparables)
    """

    def __init__(
        self,
        primary: MarketOracle,
        fallback: Optional[MarketOracle] = None,
        retry_attempts: int = 3,
        backoff_min: float = 2.0,
        backoff_max: float = 10.0,
        enable_fallback: bool = True,
    ):
        """Initialize resilient oracle.

        Args:
            primary: Oracle tried first
            fallback: Oracle used when the primary is exhausted (default: MedianOracle)
            retry_attempts: Attempts on the primary oracle
            backoff_min: Minimum seconds between attempts
            backoff_max: Maximum seconds between attempts
            enable_fallback: Whether to fall back at all
        """
        self._primary = primary
        self._fallback = fallback or MedianOracle()
        self._retry_attempts = retry_attempts
        self._backoff_min = backoff_min
        self._backoff_max = backoff_max
        self._enable_fallback = enable_fallback

        logger.info(
            f"ResilientOracle initialized (primary={primary.name}, "
            f"retry_attempts={retry_attempts}, fallback={enable_fallback})"
        )

    @property
    def name(self) -> str:
        return self._primary.name

    def estimate(self, target: Listing, comparables: ComparableSet) -> OracleEstimate:
        """Estimate with retries, falling back to the heuristic oracle.

        Raises:
            OracleUnavailable: If the primary and fallback oracles both fail
        """
        try:
            return self._estimate_with_retry(self._primary, target, comparables)

        except Exception as primary_error:
            logger.warning(
                f"Primary oracle ({self._primary.name}) failed for {target.listing_id}: {primary_error}"
            )

            if not self._enable_fallback:
                raise OracleUnavailable(
                    f"{self._primary.name} oracle failed and fallback is disabled: {primary_error}"
                ) from primary_error

            logger.info(f"Falling back to {self._fallback.name} oracle for {target.listing_id}")
            try:
                estimate = validate_estimate(self._fallback.estimate(target, comparables))
            except Exception as fallback_error:
                logger.error(f"Fallback oracle ({self._fallback.name}) also failed: {fallback_error}")
                raise OracleUnavailable(
                    f"All oracles failed. {self._primary.name}: {primary_error}. "
                    f"{self._fallback.name}: {fallback_error}"
                ) from fallback_error

            return dataclasses.replace(estimate, fallback_used=True)

    def _estimate_with_retry(
        self, oracle: MarketOracle, target: Listing, comparables: ComparableSet
    ) -> OracleEstimate:
        @retry(
            retry=retry_if_exception_type(Exception),
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=1, min=self._backoff_min, max=self._backoff_max),
            reraise=True,
        )
        def _estimate():
            return validate_estimate(oracle.estimate(target, comparables))

        return _estimate()

    def get_status(self) -> dict:
        """Get status information about the configured oracles."""
        return {
            "primary": {"source": self._primary.name},
            "fallback": {
                "source": self._fallback.name,
                "enabled": self._enable_fallback,
            },
            "retry_attempts": self._retry_attempts,
        }
