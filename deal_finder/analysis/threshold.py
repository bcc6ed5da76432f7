"""Inventory-aware undervaluation threshold."""

from dataclasses import dataclass

from deal_finder.config import Settings


@dataclass(frozen=True)
class ThresholdPolicy:
    """Thin markets get a lower bar: fewer listings means fewer real deals to wait for."""
    base_threshold: float = 15.0
    low_inventory_threshold: float = 10.0
    inventory_breakpoint: int = 200

    @classmethod
    def from_settings(cls, settings: Settings) -> "ThresholdPolicy":
        return cls(
            base_threshold=settings.undervaluation_threshold,
            low_inventory_threshold=settings.low_inventory_threshold,
            inventory_breakpoint=settings.inventory_breakpoint,
        )

    def threshold_for(self, active_count: int) -> float:
        if active_count < self.inventory_breakpoint:
            return self.low_inventory_threshold
        return self.base_threshold

    def passes(self, discount_percent: float, active_count: int) -> bool:
        return discount_percent >= self.threshold_for(active_count)
