"""
Production Configuration Schema.

Policy for backward stage moves.  Values come from the ``production``
section of the deployment YAML file.
"""

from dataclasses import dataclass
from typing import Self

from shopfloor_kernel.logging_config import get_logger

logger = get_logger("modules.production.config")


@dataclass
class ProductionConfig:
    """
    Configuration schema for the production module.

    Who may override is decided by ``OperationContext.has_override()``;
    this config decides whether overrides are possible at all and what they
    must carry.
    """

    allow_backward_override: bool = True
    require_override_justification: bool = False

    def __post_init__(self):
        if self.require_override_justification and not self.allow_backward_override:
            raise ValueError(
                "require_override_justification has no effect when "
                "allow_backward_override is False"
            )
        logger.info(
            "production_config_initialized",
            extra={
                "allow_backward_override": self.allow_backward_override,
                "require_override_justification": self.require_override_justification,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("production_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "production_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
