"""Query description validation."""

from modelweave.validation.validator import DescriptionValidator

__all__ = ["DescriptionValidator"]
