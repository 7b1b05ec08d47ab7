"""
Inventory Configuration Schema.

Low-stock alerting policy.  Values come from the ``inventory`` section of the
deployment YAML file.
"""

from dataclasses import dataclass
from typing import Self

from shopfloor_kernel.logging_config import get_logger

logger = get_logger("modules.inventory.config")


@dataclass
class InventoryConfig:
    """
    Configuration schema for the inventory module.

        config = InventoryConfig.from_dict(settings.inventory)
    """

    # A LOW_STOCK_ALERT is recorded at most once per item per window.
    low_stock_alert_window_hours: int = 24

    def __post_init__(self):
        if self.low_stock_alert_window_hours <= 0:
            raise ValueError("low_stock_alert_window_hours must be positive")

        logger.info(
            "inventory_config_initialized",
            extra={
                "low_stock_alert_window_hours": self.low_stock_alert_window_hours,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("inventory_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary (e.g., loaded from file)."""
        logger.info(
            "inventory_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
