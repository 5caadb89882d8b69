"""Site-wide configuration document: section models and persistence."""
from inkwell.configs.models import REDACTED, AppOptions
from inkwell.configs.store import ConfigStore, ConfigValidationError, UnknownConfigKeyError

__all__ = ["REDACTED", "AppOptions", "ConfigStore", "ConfigValidationError", "UnknownConfigKeyError"]
