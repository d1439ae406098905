"""Exception types for atlas-stats."""


class AtlasStatsError(Exception):
    """Base class for atlas-stats errors."""


class ConfigError(AtlasStatsError):
    """Raised when the configuration file or its values are invalid."""
