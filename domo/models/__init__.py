"""Models package for the Domo webhook service."""

from domo.models.modules import (
    DEFAULT_PRODUCT_DEMO_MODULES,
    ModuleDefinition,
    ModuleState,
)

__all__ = ["DEFAULT_PRODUCT_DEMO_MODULES", "ModuleDefinition", "ModuleState"]
