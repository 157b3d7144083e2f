"""ssestream CLI: listen to an event stream, manage default settings."""

import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
from loguru import logger

try:
    import tomllib
except ModuleNotFoundError:
    import tomli as tomllib

import tomli_w

from .client import EventSource
from .types import ClientConfig, ServerSentEvent


# ============================================================================
# Config helpers
# ============================================================================

CONFIG_DIR = Path.home() / ".ssestream"
CONFIG_FILE = CONFIG_DIR / "config.toml"


def _ensure_config_dir() -> None:
    """Create ~/.ssestream/ if it doesn't exist."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)


def _load_config() -> Dict[str, Any]:
    """Read config.toml, returning an empty dict if it doesn't exist."""
    if not CONFIG_FILE.exists():
        return {}
    with open(CONFIG_FILE, "rb") as f:
        return tomllib.load(f)


def _save_config(cfg: Dict[str, Any]) -> None:
    """Write config dict to config.toml."""
    _ensure_config_dir()
    with open(CONFIG_FILE, "wb") as f:
        tomli_w.dump(cfg, f)


def _set_nested(cfg: Dict[str, Any], dotted_key: str, value: str) -> None:
    """Set a value in a nested dict using a dotted key like 'default.chunk_size'."""
    parts = dotted_key.split(".")
    d = cfg
    for part in parts[:-1]:
        d = d.setdefault(part, {})
    d[parts[-1]] = value


def _parse_headers(values: Tuple[str, ...]) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected NAME:VALUE, got {value!r}", param_hint="--header")
        headers[name.strip()] = content.strip()
    return headers


def _format_event(event: ServerSentEvent, as_json: bool) -> str:
    if as_json:
        return event.model_dump_json(by_alias=True, exclude_none=True)
    lines = [f"event: {event.type}"]
    if event.last_event_id is not None:
        lines.append(f"id: {event.last_event_id}")
    if event.retry is not None:
        lines.append(f"retry: {event.retry}")
    data_lines = event.data.split("\n")
    if data_lines[-1] == "":
        data_lines.pop()
    for line in data_lines:
        lines.append(f"data: {line}")
    return "\n".join(lines) + "\n"


# ============================================================================
# CLI group
# ============================================================================

@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log connection details to stderr")
def cli(verbose: bool):
    """ssestream: Server-Sent Events client"""
    if verbose:
        logger.remove()
        logger.add(sys.stderr, level="DEBUG")
        logger.enable("ssestream")


# ============================================================================
# ssestream listen <url>
# ============================================================================

@cli.command()
@click.argument("url")
@click.option("--header", "-H", "header_values", multiple=True,
              help="Extra request header as NAME:VALUE (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Print one JSON object per event")
@click.option("--max-events", type=click.IntRange(min=1), default=None,
              help="Exit after this many events")
@click.option("--no-reconnect", is_flag=True, help="Exit when the stream ends")
@click.option("--last-event-id", default=None, help="Resume after this event id")
def listen(url: str, header_values: Tuple[str, ...], as_json: bool, max_events: Optional[int],
           no_reconnect: bool, last_event_id: Optional[str]):
    """Print events from URL as they arrive."""
    settings: Dict[str, Any] = dict(_load_config().get("default", {}))
    headers = dict(settings.pop("headers", {}) or {})
    headers.update(_parse_headers(header_values))
    settings["headers"] = headers
    if no_reconnect:
        settings["auto_reconnect"] = False
    if last_event_id is not None:
        settings["last_event_id"] = last_event_id

    try:
        client_config = ClientConfig(**settings)
    except ValueError as e:
        click.echo(f"Error: invalid configuration: {e}", err=True)
        sys.exit(1)

    try:
        asyncio.run(_listen(url, client_config, as_json, max_events))
    except KeyboardInterrupt:
        pass


async def _listen(url: str, config: ClientConfig, as_json: bool, max_events: Optional[int]) -> int:
    received = 0
    async with EventSource(url, config) as source:
        @source.on("error")
        def on_error(state: Any) -> None:
            click.echo(f"Disconnected: {state.reason}", err=True)

        events = source.events()
        try:
            async for event in events:
                click.echo(_format_event(event, as_json))
                received += 1
                if max_events is not None and received >= max_events:
                    break
        finally:
            await events.aclose()
    return received


# ============================================================================
# ssestream config (subgroup)
# ============================================================================

@cli.group()
def config():
    """Manage default client settings."""
    pass


@config.command("show")
def config_show():
    """Print config file contents."""
    if not CONFIG_FILE.exists():
        click.echo(f"No config file found at {CONFIG_FILE}")
        return

    with open(CONFIG_FILE, "r") as f:
        click.echo(f.read())


@config.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str):
    """Set a config value (e.g., ssestream config set default.reconnect_max_delay 60)"""
    cfg = _load_config()
    _set_nested(cfg, key, value)
    _save_config(cfg)
    click.echo(f"Set {key} = {value}")


# ============================================================================
# Entry point
# ============================================================================

def main():
    cli()


if __name__ == "__main__":
    main()
