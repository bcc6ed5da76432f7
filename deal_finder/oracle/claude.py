"""Market oracle backed by the Anthropic Messages API."""

import json
import logging
import re
from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from anthropic import Anthropic

from deal_finder.analysis.models import ComparableSet
from deal_finder.errors import InvalidEstimate, OracleUnavailable
from deal_finder.validation import Listing, PropertyKind

from .base import MarketOracle, OracleEstimate, validate_estimate

logger = logging.getLogger(__name__)

# Comparables beyond this are summarised by count only to bound prompt size
MAX_PROMPT_COMPARABLES = 40

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

PROMPT_TEMPLATE = """You are an NYC real estate pricing analyst.

Estimate the fair market {price_label} for the TARGET listing using the COMPARABLES
({tier} match, {count} listings). Consider bedrooms, bathrooms, size, building age,
amenities and neighborhood.

TARGET:
{target}

COMPARABLES:
{comparables}

Respond with a single JSON object and nothing else:
{{"estimated_market_value": <number>, "confidence": <0-100>, "reasoning": "<two sentences>"}}"""


def _describe(listing: Listing) -> str:
    parts = [
        f"{listing.address}",
        f"${listing.price:,}",
        f"{listing.bedrooms}bd/{listing.bathrooms:g}ba",
    ]
    if listing.sqft:
        parts.append(f"{listing.sqft} sqft")
    if listing.built_year:
        parts.append(f"built {listing.built_year}")
    if listing.amenities:
        parts.append("amenities: " + ", ".join(sorted(listing.amenities)))
    return " | ".join(parts)


def parse_response(text: str) -> Dict[str, Any]:
    """Extract the JSON object from a model reply.

    Raises:
        InvalidEstimate: If the reply holds no parseable JSON object
    """
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise InvalidEstimate(f"No JSON object in oracle reply: {text[:200]!r}")
    try:
        payload = json.loads(match.group())
    except json.JSONDecodeError as e:
        raise InvalidEstimate(f"Malformed JSON in oracle reply: {e}") from e
    if not isinstance(payload, dict):
        raise InvalidEstimate("Oracle reply is not a JSON object")
    return payload


class ClaudeOracle(MarketOracle):
    """Asks Claude for a market estimate given the target and its comparables."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-3-5-sonnet-latest",
        max_tokens: int = 1024,
        timeout: float = 60.0,
        client: Optional["Anthropic"] = None,
    ):
        """Initialize the oracle.

        Args:
            api_key: Anthropic API key (ignored when a client is given)
            model: Model name
            max_tokens: Maximum tokens in the reply
            timeout: Request timeout in seconds
            client: Preconfigured Anthropic client
        """
        if client is None:
            # Lazy import so the heuristic-only setup never needs the SDK configured
            from anthropic import Anthropic

            if not api_key:
                raise OracleUnavailable("No Anthropic API key configured")
            client = Anthropic(api_key=api_key, timeout=timeout)

        self._client = client
        self._model = model
        self._max_tokens = max_tokens

    @property
    def name(self) -> str:
        return "claude"

    def build_prompt(self, target: Listing, comparables: ComparableSet) -> str:
        shown = comparables.listings[:MAX_PROMPT_COMPARABLES]
        lines = [f"- {_describe(c)}" for c in shown]
        if comparables.count > len(shown):
            lines.append(f"- ... and {comparables.count - len(shown)} more")
        price_label = "monthly rent" if target.property_kind == PropertyKind.RENTAL else "sale price"
        return PROMPT_TEMPLATE.format(
            price_label=price_label,
            tier=comparables.tier.value,
            count=comparables.count,
            target=_describe(target),
            comparables="\n".join(lines) or "- none",
        )

    def estimate(self, target: Listing, comparables: ComparableSet) -> OracleEstimate:
        logger.debug(f"Requesting Claude estimate for {target.listing_id} ({comparables.count} comparables)")
        response = self._client.messages.create(
            model=self._model,
            max_tokens=self._max_tokens,
            messages=[{"role": "user", "content": self.build_prompt(target, comparables)}],
        )
        text = "".join(
            getattr(block, "text", "") for block in (response.content or [])
        )
        payload = parse_response(text)

        hints = {k: v for k, v in payload.items() if k not in ("estimated_market_value", "reasoning")}
        return validate_estimate(
            OracleEstimate(
                estimated_value=payload.get("estimated_market_value"),
                source=self.name,
                reasoning=payload.get("reasoning"),
                raw_confidence_hints=hints,
            )
        )
