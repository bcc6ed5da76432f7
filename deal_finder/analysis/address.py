"""Street address normalization and fuzzy matching against registry records."""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from deal_finder.analysis.models import RegistryRecord

# Similarity assigned when both house numbers are present and differ.
HOUSE_NUMBER_MISMATCH = 0.1
HOUSE_NUMBER_BONUS = 0.3
DEFAULT_MATCH_THRESHOLD = 0.6

_ABBREVIATIONS = {
    "street": "st",
    "str": "st",
    "avenue": "ave",
    "av": "ave",
    "boulevard": "blvd",
    "place": "pl",
    "road": "rd",
    "drive": "dr",
    "lane": "ln",
    "terrace": "ter",
    "parkway": "pkwy",
    "square": "sq",
    "east": "e",
    "west": "w",
    "north": "n",
    "south": "s",
}

_HOUSE_NUMBER = re.compile(r"^\d+(?:-\d+)?[a-z]?$")
_ORDINAL = re.compile(r"^(\d+)(?:st|nd|rd|th)$")
_UNIT_SUFFIX = re.compile(r"(?:#|\b(?:apt|unit|ste|suite)\b\.?)\s*\w+$")


def normalize_address(address: str) -> str:
    """Normalize an address for comparison.

    "123 East 7th Street, Apt 4B" -> "123 e 7 st"
    """
    if not address:
        return ""
    text = address.lower().split(",")[0]
    text = _UNIT_SUFFIX.sub("", text.strip())
    # Keep hyphens inside Queens-style house numbers ("37-12")
    text = re.sub(r"(?<!\d)-|-(?!\d)", " ", text)
    text = re.sub(r"[^\w\s-]", " ", text)

    tokens = []
    for token in text.split():
        ordinal = _ORDINAL.match(token)
        if ordinal:
            token = ordinal.group(1)
        tokens.append(_ABBREVIATIONS.get(token, token))
    return " ".join(tokens)


def house_number(tokens: Sequence[str]) -> Optional[str]:
    """Return the leading numeric token, if any."""
    if tokens and _HOUSE_NUMBER.match(tokens[0]):
        return tokens[0]
    return None


@dataclass(frozen=True)
class RegistryMatch:
    record: RegistryRecord
    similarity: float


class AddressMatcher:
    """Fuzzy matcher for street addresses.

    A street-number mismatch is disqualifying: "123 Main St" and "456 Main St"
    share most tokens but are different buildings.
    """

    def __init__(self, threshold: float = DEFAULT_MATCH_THRESHOLD):
        self.threshold = threshold

    def similarity(self, a: str, b: str) -> float:
        """Token-set similarity in [0, 1] between two addresses."""
        tokens_a = normalize_address(a).split()
        tokens_b = normalize_address(b).split()
        if not tokens_a or not tokens_b:
            return 0.0

        number_a = house_number(tokens_a)
        number_b = house_number(tokens_b)
        if number_a and number_b and number_a != number_b:
            return HOUSE_NUMBER_MISMATCH

        set_a, set_b = set(tokens_a), set(tokens_b)
        score = len(set_a & set_b) / len(set_a | set_b)
        if number_a and number_a == number_b:
            score = min(1.0, score + HOUSE_NUMBER_BONUS)
        return score

    def match(
        self,
        address: str,
        records: Sequence[RegistryRecord],
        threshold: Optional[float] = None,
    ) -> List[RegistryMatch]:
        """Return registry records at or above the threshold, best first."""
        threshold = self.threshold if threshold is None else threshold
        matches = []
        for record in records:
            score = self.similarity(address, record.address)
            if score >= threshold:
                matches.append(RegistryMatch(record=record, similarity=score))
        matches.sort(key=lambda m: (-m.similarity, m.record.address))
        return matches

    def best_match(
        self, address: str, records: Sequence[RegistryRecord]
    ) -> Optional[RegistryMatch]:
        matches = self.match(address, records)
        return matches[0] if matches else None
