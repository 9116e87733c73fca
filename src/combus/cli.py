"""ComBus CLI.

Usage:
    combus config                          # Show configuration
    combus config --json                   # Configuration as JSON
    combus issuers --count 5 --type ping   # Allocate sample issuers
    combus bench                           # Round-trip benchmark
    combus bench --calls 10000 --handlers 2 --json
    combus --log-level DEBUG bench --calls 3
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import time
from typing import Any

import click

from .bus import ComBus
from .config import BusConfig
from .envelope import Envelope, create_issuer


def _load_config() -> BusConfig:
    try:
        return BusConfig.from_env()
    except ValueError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.option("--log-level", default=None, help="Logging level (overrides COMBUS_LOG_LEVEL)")
@click.pass_context
def main(ctx: click.Context, log_level: str | None) -> None:
    """ComBus - request/reply over an in-process broadcast bus."""
    config = _load_config()
    if log_level:
        try:
            config = BusConfig(dispatch_timeout=config.dispatch_timeout, log_level=log_level)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--log-level") from e

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    ctx.obj = config


@main.command("config")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def show_config(config: BusConfig, output_json: bool) -> None:
    """Show current configuration."""
    if output_json:
        click.echo(json.dumps(config.to_dict(), indent=2))
        return

    timeout = config.dispatch_timeout
    click.echo("ComBus Configuration")
    click.echo("-" * 40)
    click.echo(f"Dispatch timeout:   {f'{timeout}s' if timeout is not None else 'none'}")
    click.echo(f"Log level:          {config.log_level}")


@main.command("issuers")
@click.option("--count", default=5, type=click.IntRange(min=1), help="How many issuers")
@click.option("--type", "event_type", default="example", help="Event type to scope them to")
def issuers(count: int, event_type: str) -> None:
    """Allocate and print fresh issuers."""
    for _ in range(count):
        click.echo(create_issuer(event_type))


async def run_bench(calls: int, handlers: int, config: BusConfig | None = None) -> dict[str, Any]:
    """Dispatch ``calls`` concurrent calls against ``handlers`` echo listeners.

    Returns:
        Dict with timing, issuer uniqueness, leaked subscriber and envelope counts
    """
    bus = ComBus(config=config)
    event_type = "bench.echo"

    for index in range(handlers):

        async def echo(envelope: Envelope[Any], index: int = index) -> dict[str, Any]:
            return {"handler": index, "value": envelope.payload}

        bus.listen(event_type, echo)

    observed: list[Envelope[Any]] = []
    bus.transport.subscribe_all(observed.append)

    started = time.perf_counter()
    pending = [bus.dispatch(event_type, n) for n in range(calls)]
    replies = await asyncio.gather(*pending)
    await bus.drain()
    elapsed = time.perf_counter() - started

    issuers = {call.issuer for call in pending}
    mismatched = sum(1 for n, reply in enumerate(replies) if reply.payload["value"] != n)
    leaked = sum(bus.transport.subscriber_count(issuer) for issuer in issuers)

    return {
        "calls": calls,
        "handlers": handlers,
        "elapsed_seconds": round(elapsed, 6),
        "calls_per_second": round(calls / elapsed, 1) if elapsed > 0 else None,
        "unique_issuers": len(issuers),
        "mismatched_replies": mismatched,
        "leaked_subscribers": leaked,
        "envelopes_observed": len(observed),
    }


@main.command("bench")
@click.option("--calls", default=1000, type=click.IntRange(min=1), help="Number of dispatches")
@click.option("--handlers", default=1, type=click.IntRange(min=1), help="Listeners on the channel")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def bench(config: BusConfig, calls: int, handlers: int, output_json: bool) -> None:
    """Measure dispatch/reply round trips on a fresh bus."""
    stats = asyncio.run(run_bench(calls, handlers, config))

    if output_json:
        click.echo(json.dumps(stats, indent=2))
        return

    click.echo(f"Calls:              {stats['calls']}")
    click.echo(f"Handlers:           {stats['handlers']}")
    click.echo(f"Elapsed:            {stats['elapsed_seconds']:.4f}s")
    click.echo(f"Calls/second:       {stats['calls_per_second']}")
    click.echo(f"Unique issuers:     {stats['unique_issuers']}")
    click.echo(f"Mismatched replies: {stats['mismatched_replies']}")
    click.echo(f"Leaked subscribers: {stats['leaked_subscribers']}")
    click.echo(f"Envelopes observed: {stats['envelopes_observed']}")


if __name__ == "__main__":
    main()
