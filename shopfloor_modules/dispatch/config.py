"""
Dispatch Configuration Schema.

Vehicle release and stock policy for the delivery-note lifecycle.  Values
come from the ``dispatch`` section of the deployment YAML file.
"""

from dataclasses import dataclass
from typing import Self

from shopfloor_kernel.logging_config import get_logger

logger = get_logger("modules.dispatch.config")


@dataclass
class DispatchConfig:
    """
    Configuration schema for the dispatch module.

    ``clear_driver_on_release`` unbinds the driver from the vehicle when a
    delivery completes.  ``allow_negative_stock`` lets dispatch take an
    item below zero instead of failing with InsufficientStockError.
    """

    clear_driver_on_release: bool = False
    allow_negative_stock: bool = False

    def __post_init__(self):
        if self.allow_negative_stock:
            logger.warning("dispatch_negative_stock_enabled")
        logger.info(
            "dispatch_config_initialized",
            extra={
                "clear_driver_on_release": self.clear_driver_on_release,
                "allow_negative_stock": self.allow_negative_stock,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("dispatch_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "dispatch_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
