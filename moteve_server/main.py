"""
Command-line interface for the Moteve server.
"""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

import aiohttp
import typer
import uvicorn

from .application.container import Container
from .application.startup import ApplicationStartup
from .infrastructure.config.loader import ConfigLoader
from .infrastructure.config.models import ApplicationConfig
from .infrastructure.logging.setup import setup_logging
from .presentation.api.app import create_app

cli = typer.Typer(
    name="moteve-server",
    help="Video upload server for Moteve mobile clients"
)

logger = logging.getLogger(__name__)

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Configuration file path")


def _uvicorn_log_level(level: str) -> str:
    # uvicorn has no SUCCESS level
    level = level.lower()
    return "info" if level == "success" else level


def _load_or_exit(config_file: Optional[str], failure: str) -> ApplicationConfig:
    try:
        return ConfigLoader().load_config(config_file)
    except (FileNotFoundError, ValueError, TypeError) as e:
        typer.echo(f"{failure}: {e}", err=True)
        sys.exit(1)


def _summary(config: ApplicationConfig) -> List[str]:
    return [
        f"Application: {config.name} v{config.version}",
        f"Environment: {config.environment}",
        f"Listening on: {config.server.host}:{config.server.port}",
        f"Storage backend: {config.upload.storage_backend}",
        f"Accounts: {len(config.accounts)}",
    ]


@cli.command()
def start(
    config_file: Optional[str] = CONFIG_OPTION,
    host: Optional[str] = typer.Option(None, "--host", help="Server host address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Server port"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug mode")
) -> None:
    """Start the Moteve server."""
    config = _load_or_exit(config_file, "Error loading configuration")

    config.server.host = host or config.server.host
    config.server.port = port or config.server.port
    if log_level:
        config.logging.level = log_level.upper()
    if debug:
        config.debug = True
        config.logging.level = "DEBUG"

    setup_logging(config.logging)
    for line in _summary(config):
        logger.info(line)

    try:
        asyncio.run(run_application(config))
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
    except Exception as e:
        logger.error(f"Application failed: {e}")
        sys.exit(1)


@cli.command()
def dev(
    config_file: Optional[str] = CONFIG_OPTION,
    port: int = typer.Option(8080, "--port", "-p", help="Server port"),
    reload: bool = typer.Option(True, "--reload/--no-reload", help="Enable auto-reload")
) -> None:
    """Start the server in development mode with auto-reload."""
    # The reloaded worker builds its app from the environment
    if config_file:
        os.environ["MOTEVE_CONFIG"] = str(Path(config_file).resolve())
    os.environ.update({
        "MOTEVE_PORT": str(port),
        "MOTEVE_DEBUG": "true",
        "MOTEVE_ENVIRONMENT": "development",
        "MOTEVE_LOG_LEVEL": "DEBUG",
    })

    config = _load_or_exit(config_file, "Error loading configuration")
    config.debug = True
    config.environment = "development"
    config.logging.level = "DEBUG"
    config.server.port = port

    setup_logging(config.logging)
    logger.info(f"Starting {config.name} in development mode")

    uvicorn.run(
        "moteve_server.presentation.api.app:create_app_from_config",
        factory=True,
        host=config.server.host,
        port=port,
        reload=reload,
        reload_dirs=["moteve_server"],
        log_level="debug",
        access_log=True
    )


@cli.command()
def init_config(
    output: str = typer.Option("config.yaml", "--output", "-o", help="Output configuration file"),
    format: str = typer.Option("yaml", "--format", "-f", help="Configuration format (yaml/json)"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file")
) -> None:
    """Write a configuration file holding the defaults."""
    if Path(output).exists() and not force:
        typer.echo(f"{output} already exists, use --force to overwrite", err=True)
        sys.exit(1)

    try:
        ConfigLoader().save_config(ApplicationConfig(), output, format)
    except ValueError as e:
        typer.echo(f"Error saving configuration: {e}", err=True)
        sys.exit(1)

    typer.echo(f"Default configuration saved to {output}")


@cli.command()
def validate_config(
    config_file: str = typer.Argument(..., help="Configuration file to validate")
) -> None:
    """Check a configuration file and print what it configures."""
    config = _load_or_exit(config_file, "Configuration validation failed")

    typer.echo(f"Configuration file {config_file} is valid")
    for line in _summary(config):
        typer.echo(line)


@cli.command()
def health_check(
    host: str = typer.Option("localhost", "--host", help="Server host"),
    port: int = typer.Option(8080, "--port", help="Server port"),
    timeout: float = typer.Option(10.0, "--timeout", help="Request timeout"),
    detailed: bool = typer.Option(False, "--detailed", help="Report each component")
) -> None:
    """Query the health endpoint of a running server."""
    url = f"http://{host}:{port}/health/{'detailed' if detailed else ''}"
    if not asyncio.run(_fetch_health(url, timeout)):
        sys.exit(1)


async def _fetch_health(url: str, timeout: float) -> bool:
    try:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
            async with session.get(url) as response:
                if response.status != 200:
                    typer.echo(f"Server returned status {response.status}")
                    return False
                data = await response.json()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        typer.echo(f"Health check failed: {e}")
        return False

    typer.echo(f"Server is healthy: {data.get('status', 'unknown')}")
    for name, component in data.get("components", {}).items():
        typer.echo(f"  {name}: {component.get('status', 'unknown')}")
    return True


async def run_application(config: ApplicationConfig) -> None:
    """
    Configure the services and serve until uvicorn exits.

    Components start and stop in the app lifespan; the final
    ``stop_application`` covers failures before the server came up.
    """
    container = Container()
    startup = ApplicationStartup(container)

    try:
        config.ensure_directories()
        await startup.configure_services(config)

        server = uvicorn.Server(uvicorn.Config(
            app=create_app(container, config, startup),
            host=config.server.host,
            port=config.server.port,
            log_level=_uvicorn_log_level(config.logging.level),
            access_log=config.debug,
        ))
        await server.serve()
    except Exception as e:
        logger.error(f"Application error: {e}")
        raise
    finally:
        await startup.stop_application()


def main() -> None:
    """Main entry point for the CLI."""
    cli()
