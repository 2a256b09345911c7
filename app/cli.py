"""Command-line interface for disk-warn."""

import logging
import os
import signal
import sys
import traceback
from typing import Optional

import click
import daemon
import structlog
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from app.config import DEFAULT_CONFIG, ConfigManager
from app.core.monitor import INITIAL_RATIO, DiskMonitor
from app.core.throttle import percentage_points, should_alert
from app.errors import ConfigError, DeliveryError, ReadError
from app.monitors import DiskUsageSource
from app.notifiers import format_message, notifier_from_config

console = Console()
logger = structlog.get_logger()


def get_app_paths(config=None):
    """Get application paths based on user permissions and config.

    Args:
        config: Optional configuration dictionary

    Returns:
        tuple: (log_file_path, pid_file_path)
    """
    if config is None:
        config = {}

    paths_config = config.get("paths") or {}

    # Default paths
    if os.getuid() == 0:  # Root user
        default_log_path = "/var/log/disk-warn/disk-warn.log"
        default_pid_path = "/var/run/disk-warn/disk-warn.pid"
    else:  # Non-root user
        home = os.path.expanduser("~")
        default_log_path = os.path.join(home, ".local/log/disk-warn/disk-warn.log")
        default_pid_path = os.path.join(home, ".local/run/disk-warn/disk-warn.pid")

    log_path = os.path.expanduser(paths_config.get("log_file") or default_log_path)
    pid_path = os.path.expanduser(paths_config.get("pid_file") or default_pid_path)

    for path in [log_path, pid_path]:
        os.makedirs(os.path.dirname(path), mode=0o755, exist_ok=True)

    return log_path, pid_path


def get_pid_file(config=None):
    """Get the appropriate PID file location."""
    _, pid_path = get_app_paths(config)
    return pid_path


def create_pid_file(config=None):
    """Create PID file for the monitor process."""
    pid_file = get_pid_file(config)
    try:
        with open(pid_file, "w", encoding="utf-8") as f:
            f.write(str(os.getpid()))
        return pid_file
    except OSError as e:
        logger.error("Failed to create PID file", error=str(e), pid_file=pid_file)
        return None


def remove_pid_file(config=None):
    """Remove PID file."""
    try:
        pid_file = get_pid_file(config)
        if os.path.exists(pid_file):
            os.remove(pid_file)
    except OSError as e:
        logger.warning("Failed to remove PID file", error=str(e))


def setup_logging(config, daemonized: bool = False):
    """Set up logging configuration.

    A detached process has no console, so it always logs to the log file.

    Args:
        config: The configuration dictionary
        daemonized: True when running inside a daemon context
    """
    if not config:
        config = {}

    log_config = config.get("logging", {})

    # Check environment variable first, then config file
    env_log_level = os.environ.get("LOGLEVEL", "").upper()
    log_level = (env_log_level or log_config.get("level", "INFO")).upper()

    base_processors = [
        structlog.stdlib.filter_by_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    handlers = [logging.StreamHandler()]
    log_path = None

    if log_config.get("file") == "stdout" and not daemonized:
        # For stdout, use a more readable format
        processors = [
            *base_processors,
            structlog.dev.ConsoleRenderer(
                colors=True, exception_formatter=structlog.dev.plain_traceback
            ),
        ]
    else:
        log_path, _ = get_app_paths(config)
        try:
            handlers.append(logging.FileHandler(log_path))
        except PermissionError:
            logger.warning(
                "Cannot write to log file, falling back to console only",
                log_path=log_path,
            )
        # For file output, use JSON format
        processors = [
            *base_processors,
            structlog.processors.JSONRenderer(),
        ]

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(message)s",
        handlers=handlers,
        force=True,
    )

    # Apprise logs every request it makes
    logging.getLogger("apprise").setLevel(logging.WARNING)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logger.info(
        "Logging initialized",
        log_path=log_path,
        log_level=log_level,
        env_log_level=env_log_level,
    )


def build_monitor(config_manager: ConfigManager) -> DiskMonitor:
    """Wire the disk usage source and notifier into a monitor."""
    settings = config_manager.get_settings()
    return DiskMonitor(
        source=DiskUsageSource(settings.path),
        notifier=notifier_from_config(config_manager.get_config()["notifier"]),
        threshold=settings.threshold,
        interval=settings.interval,
    )


def monitor_loop(config_manager: ConfigManager, daemonized: bool = False):
    """Main monitoring loop."""
    config = config_manager.get_config()
    try:
        setup_logging(config, daemonized=daemonized)
        if not create_pid_file(config):
            return

        monitor = build_monitor(config_manager)
        logger.info(
            "Starting disk-warn",
            path=config["monitor"]["path"],
            threshold=monitor.threshold,
            sleep_time=monitor.interval,
        )
        monitor.run()
    except KeyboardInterrupt:
        logger.info("Monitoring stopped by user")
    except Exception as e:
        logger.error("Monitoring loop failed", error=str(e), exc_info=True)
        raise
    finally:
        logger.info("Exiting monitor loop")
        remove_pid_file(config)


def _load_valid_config(config: Optional[str]) -> ConfigManager:
    config_manager = ConfigManager(config)
    if not config_manager.validate_config():
        click.echo("Invalid configuration. Please check your config file.")
        sys.exit(1)
    return config_manager


@click.group()
def cli():
    """disk-warn - Push notifications when free disk space runs low."""
    pass


@cli.command("version", help="Show version information")
def show_version():
    """Show version information."""
    from importlib.metadata import PackageNotFoundError, version

    try:
        console.print(f"[blue]disk-warn version {version('disk-warn')}[/blue]")
    except PackageNotFoundError:
        console.print("[red]Error: Could not determine version[/red]")


@cli.command()
@click.option(
    "--config", "-c", type=click.Path(exists=True), help="Path to configuration file"
)
@click.option(
    "--foreground", "-f", is_flag=True, help="Run in foreground instead of as daemon"
)
def start(config: Optional[str], foreground: bool):
    """Start the disk space monitor."""
    config_manager = _load_valid_config(config)
    click.echo("Starting disk space monitoring...")

    if foreground:
        try:
            monitor_loop(config_manager)
        except Exception as e:
            logger.error(
                "Monitor loop failed to start",
                error=str(e),
                traceback=traceback.format_exc(),
            )
            sys.exit(1)
        return

    try:
        get_app_paths(config_manager.get_config())
    except PermissionError as e:
        click.echo(f"Error: {e}. Please check permissions.")
        sys.exit(1)

    context = daemon.DaemonContext(
        working_directory=os.getcwd(),
        umask=0o002,
        detach_process=True,
        files_preserve=[],
    )

    try:
        with context:
            monitor_loop(config_manager, daemonized=True)
    except Exception as e:
        logger.error(
            "Failed to start daemon",
            error=str(e),
            traceback=traceback.format_exc(),
        )
        sys.exit(1)


def _read_pid(config: Optional[str]) -> int:
    pid_file = get_pid_file(ConfigManager(config).get_config())
    with open(pid_file, "r", encoding="utf-8") as f:
        return int(f.read().strip())


@cli.command()
@click.option(
    "--config", "-c", type=click.Path(exists=True), help="Path to configuration file"
)
def stop(config: Optional[str]):
    """Stop the disk space monitor."""
    try:
        os.kill(_read_pid(config), signal.SIGTERM)
        click.echo("Stopped disk space monitoring.")
    except FileNotFoundError:
        click.echo("Disk monitor is not running.")
    except ProcessLookupError:
        click.echo("Disk monitor is not running.")
        remove_pid_file(ConfigManager(config).get_config())
    except (OSError, ValueError) as e:
        click.echo(f"Error stopping monitor: {e}")


@cli.command()
@click.option(
    "--config", "-c", type=click.Path(exists=True), help="Path to configuration file"
)
def status(config: Optional[str]):
    """Show monitor status."""
    try:
        os.kill(_read_pid(config), 0)
        click.echo("Disk monitor is running.")
    except FileNotFoundError:
        click.echo("Disk monitor is not running.")
    except ProcessLookupError:
        click.echo("Disk monitor is not running.")
        remove_pid_file(ConfigManager(config).get_config())
    except (OSError, ValueError) as e:
        click.echo(f"Error checking status: {e}")


@cli.command()
@click.option(
    "--config", "-c", type=click.Path(exists=True), help="Path to configuration file"
)
@click.option(
    "--previous",
    "-p",
    type=click.FloatRange(0, 1),
    default=INITIAL_RATIO,
    show_default=True,
    help="Previously observed free-space ratio",
)
def check(config: Optional[str], previous: float):
    """Check free space once and show whether an alert would be sent."""
    settings = _load_valid_config(config).get_settings()
    source = DiskUsageSource(settings.path)

    try:
        ratio = source.read()
    except ReadError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    try:
        mounted_on = source.mounted_on()
    except ReadError:
        mounted_on = None

    alert = should_alert(ratio, settings.threshold, previous)

    table = Table(title="Disk Space", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")

    table.add_row("Path", settings.path)
    table.add_row("Mounted on", mounted_on or "unknown")
    table.add_row("Free", f"{ratio * 100:.2f}%")
    table.add_row("Threshold", f"{settings.threshold * 100:.2f}%")
    table.add_row("Previous", f"{percentage_points(previous)}%")
    table.add_row("Alert", "[red]yes[/red]" if alert else "no")

    console.print(Panel(table, title="disk-warn", border_style="blue"))


@cli.command("test-notify")
@click.option(
    "--config", "-c", type=click.Path(exists=True), help="Path to configuration file"
)
@click.option(
    "--ratio",
    "-r",
    type=click.FloatRange(0, 1),
    default=0.05,
    show_default=True,
    help="Free-space ratio to report in the test message",
)
def test_notify(config: Optional[str], ratio: float):
    """Send a single test notification."""
    config_manager = _load_valid_config(config)
    notifier = notifier_from_config(config_manager.get_config()["notifier"])

    try:
        notifier.send(ratio)
    except (ConfigError, DeliveryError) as e:
        click.echo(f"Error sending notification: {e}")
        sys.exit(1)
    click.echo(f"Sent notification: {format_message(ratio)}")


@cli.group()
def config():
    """Manage configuration."""
    pass


@config.command("show")
@click.option(
    "--config", "-c", type=click.Path(exists=True), help="Path to configuration file"
)
def show_config(config: Optional[str]):
    """Show current configuration."""
    config_manager = ConfigManager(config)
    click.echo(yaml.dump(config_manager.get_config(), default_flow_style=False))


@config.command("validate")
@click.option(
    "--config", "-c", type=click.Path(exists=True), help="Path to configuration file"
)
def validate_config(config: Optional[str]):
    """Validate configuration file."""
    config_manager = ConfigManager(config)
    if config_manager.validate_config():
        click.echo("Configuration is valid.")
    else:
        click.echo("Configuration is invalid.")
        sys.exit(1)


@cli.command()
@click.option(
    "--path",
    "-p",
    type=click.Path(),
    default="config.yaml",
    help="Path to create the config file",
)
@click.option(
    "--no-log-file",
    is_flag=True,
    help="Configure logging to console only (no log file)",
)
def init(path: str, no_log_file: bool):
    """Initialize a new configuration file with default settings."""
    if os.path.exists(path):
        click.echo(
            f"Error: {path} already exists. Please choose a different path or remove the existing file."
        )
        sys.exit(1)

    default_config = {
        "monitor": dict(DEFAULT_CONFIG["monitor"]),
        "notifier": {
            "service": "pushbullet",
            "token_env": "PUSHBULLET_TOKEN",
            "connect_timeout": 4,
            "read_timeout": 10,
        },
        "logging": {"level": "info", "file": "stdout" if no_log_file else "json"},
    }

    if not no_log_file:
        if os.getuid() == 0:
            default_config["paths"] = {
                "log_file": "/var/log/disk-warn/disk-warn.log",
                "pid_file": "/var/run/disk-warn/disk-warn.pid",
            }
        else:
            default_config["paths"] = {
                "log_file": "~/.local/log/disk-warn/disk-warn.log",
                "pid_file": "~/.local/run/disk-warn/disk-warn.pid",
            }

    try:
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        click.echo(f"Error creating config file: {e}")
        sys.exit(1)

    click.echo(f"Created default configuration at {path}")
    click.echo("\nNext steps:")
    click.echo("1. Review and customize the configuration file")
    click.echo("2. Export your access token: export PUSHBULLET_TOKEN=...")
    click.echo(f"3. Verify delivery: disk-warn test-notify -c {path}")
    click.echo(f"4. Start the monitor: disk-warn start -c {path}")


if __name__ == "__main__":
    cli()
