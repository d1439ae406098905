"""Configuration system for atlas-stats."""

from dataclasses import dataclass, field
from pathlib import Path

import tomlkit

from atlas_stats.errors import ConfigError


def _section(data: dict, name: str, path: Path) -> dict:
    """Return the ``[name]`` table, or an empty one when absent."""
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"Invalid config file {path}: [{name}] must be a table")
    return section


def _prefixes(section: dict, key: str, default: list[str]) -> list[str]:
    """Read a list of path prefixes. A bare string would match per character."""
    value = section.get(key, default)
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"sampling.{key} must be a list of strings, got {value!r}")
    return list(value)


@dataclass
class SamplingConfig:
    """Sampler configuration."""

    poll_interval: float = 1.0  # Seconds between polls
    cpu_window: float = 0.2  # Seconds each poll blocks on the system CPU sample
    top_n: int = 5  # Entries per ranked view
    excluded_device_prefixes: list[str] = field(default_factory=lambda: ["/dev/loop"])
    excluded_mount_prefixes: list[str] = field(default_factory=lambda: ["/snap/"])

    def validate(self) -> None:
        """Raise ConfigError if the values cannot drive a sampler."""
        if self.top_n < 1:
            raise ConfigError(f"sampling.top_n must be at least 1, got {self.top_n}")
        if self.cpu_window <= 0:
            raise ConfigError(f"sampling.cpu_window must be positive, got {self.cpu_window}")
        if self.poll_interval <= self.cpu_window:
            raise ConfigError(
                f"sampling.poll_interval ({self.poll_interval}) must exceed "
                f"sampling.cpu_window ({self.cpu_window})"
            )


@dataclass
class LoggingConfig:
    """Log file configuration. The terminal belongs to the dashboard."""

    level: str = "info"
    file: str = ""  # Empty means <state dir>/atlas-stats.log
    max_bytes: int = 5 * 1024 * 1024
    backup_count: int = 3

    def validate(self) -> None:
        """Raise ConfigError on an unknown level."""
        if self.level.lower() not in ("debug", "info", "warning", "error", "critical"):
            raise ConfigError(f"logging.level is not a log level: {self.level!r}")


@dataclass
class Config:
    """Main configuration container."""

    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "atlas-stats"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """Directory for the log file."""
        return Path.home() / ".local" / "state" / "atlas-stats"

    @property
    def log_path(self) -> Path:
        """Path to the JSON log file."""
        if self.logging.file:
            return Path(self.logging.file).expanduser()
        return self.state_dir / "atlas-stats.log"

    def validate(self) -> None:
        """Validate every section."""
        self.sampling.validate()
        self.logging.validate()

    def save(self, path: Path | None = None) -> None:
        """Write the config as TOML."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        doc = tomlkit.document()
        doc.add(tomlkit.comment("atlas-stats configuration"))
        doc.add(tomlkit.nl())

        sampling = tomlkit.table()
        sampling.add("poll_interval", self.sampling.poll_interval)
        sampling.add("cpu_window", self.sampling.cpu_window)
        sampling.add("top_n", self.sampling.top_n)
        sampling.add("excluded_device_prefixes", self.sampling.excluded_device_prefixes)
        sampling.add("excluded_mount_prefixes", self.sampling.excluded_mount_prefixes)
        doc.add("sampling", sampling)

        logging_table = tomlkit.table()
        logging_table.add("level", self.logging.level)
        logging_table.add("file", self.logging.file)
        logging_table.add("max_bytes", self.logging.max_bytes)
        logging_table.add("backup_count", self.logging.backup_count)
        doc.add("logging", logging_table)

        path.write_text(tomlkit.dumps(doc))

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        Raises:
            ConfigError: If the file cannot be parsed or holds invalid values.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path, encoding="utf-8") as f:
                data = tomlkit.load(f).unwrap()
        except tomlkit.exceptions.TOMLKitError as e:
            raise ConfigError(f"Failed to parse config file {path}: {e}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Failed to read config file {path}: {e}") from e

        sampling_data = _section(data, "sampling", path)
        logging_data = _section(data, "logging", path)
        sam = defaults.sampling
        lg = defaults.logging

        try:
            config = cls(
                sampling=SamplingConfig(
                    poll_interval=float(sampling_data.get("poll_interval", sam.poll_interval)),
                    cpu_window=float(sampling_data.get("cpu_window", sam.cpu_window)),
                    top_n=int(sampling_data.get("top_n", sam.top_n)),
                    excluded_device_prefixes=_prefixes(
                        sampling_data, "excluded_device_prefixes", sam.excluded_device_prefixes
                    ),
                    excluded_mount_prefixes=_prefixes(
                        sampling_data, "excluded_mount_prefixes", sam.excluded_mount_prefixes
                    ),
                ),
                logging=LoggingConfig(
                    level=str(logging_data.get("level", lg.level)),
                    file=str(logging_data.get("file", lg.file)),
                    max_bytes=int(logging_data.get("max_bytes", lg.max_bytes)),
                    backup_count=int(logging_data.get("backup_count", lg.backup_count)),
                ),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value in config file {path}: {e}") from e

        config.validate()
        return config
