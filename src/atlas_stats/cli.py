"""Command line entry point for atlas-stats."""

from pathlib import Path

import click

from atlas_stats.errors import ConfigError


@click.command()
@click.version_option(package_name="atlas-stats")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.config/atlas-stats/config.toml)",
)
@click.option("--interval", type=float, default=None, help="Seconds between polls")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write JSON logs here instead of the state directory",
)
def main(config_path: Path | None, interval: float | None, log_file: Path | None) -> None:
    """Live host and process metrics with Top-N rankings."""
    from atlas_stats import logging as atlas_logging
    from atlas_stats.app import AtlasStatsApp
    from atlas_stats.config import Config

    try:
        config = Config.load(config_path)
        if interval is not None:
            config.sampling.poll_interval = interval
        if log_file is not None:
            config.logging.file = str(log_file)
        config.validate()
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    atlas_logging.configure(config)
    AtlasStatsApp(config).run()


if __name__ == "__main__":
    main()
