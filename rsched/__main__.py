"""Entry point: python -m rsched."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.json import JSON
from rich.panel import Panel
from rich.table import Table

from rsched.client import SchedulerClient
from rsched.config import ClientConfig, load_config
from rsched.errors import SchedulerError
from rsched.log_context import set_log_context
from rsched.logging_config import setup_logging
from rsched.models import ScheduleRecord, ScheduleRequest, ScheduleUpdate
from rsched.webhook.events import DATA_EVENT

logger = logging.getLogger(__name__)

_console = Console()

Command = Callable[[SchedulerClient, argparse.Namespace], Awaitable[None]]


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _json_arg(value: str) -> Any:
    try:
        return json.loads(value)
    except json.JSONDecodeError as exc:
        msg = f"not valid JSON: {exc}"
        raise argparse.ArgumentTypeError(msg) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rsched", description="Redis scheduler client")
    parser.add_argument("--config", type=Path, default=None, help="JSON config file")
    parser.add_argument("--url", dest="instance_url", default=None, help="Scheduler instance URL")
    parser.add_argument("--token", dest="authorization", default=None, help="Authorization token")
    parser.add_argument("--log-dir", type=Path, default=None, help="Write rotating log files here")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("ping", help="Check that the instance is reachable")
    sub.add_parser("stats", help="Show service statistics")
    sub.add_parser("list", help="List all schedules")

    get = sub.add_parser("get", help="Show one schedule")
    get.add_argument("key")

    create = sub.add_parser("schedule", help="Create a schedule")
    create.add_argument("--webhook", required=True, help="URL the service calls on expiry")
    create.add_argument("--ttl", type=int, required=True, help="Seconds until delivery")
    create.add_argument("--data", type=_json_arg, default=None, help="JSON payload")

    update = sub.add_parser("update", help="Update a schedule")
    update.add_argument("key")
    update.add_argument("--webhook", default=None)
    update.add_argument("--ttl", type=int, default=None)
    update.add_argument("--retry", type=int, default=None)
    update.add_argument("--data", type=_json_arg, default=None, help="JSON payload")

    delete = sub.add_parser("delete", help="Delete a schedule")
    delete.add_argument("key")

    sub.add_parser("delete-all", help="Delete every schedule")

    listen = sub.add_parser("listen", help="Receive webhook deliveries and print them")
    listen.add_argument("--port", type=int, default=None, help="Webhook listen port")
    listen.add_argument("--host", default=None, help="Webhook bind address")
    return parser


def _resolve_config(args: argparse.Namespace) -> ClientConfig:
    overrides: dict[str, Any] = {
        "instance_url": args.instance_url,
        "authorization": args.authorization,
    }
    if args.command == "listen":
        webhook = {"port": args.port, "host": args.host}
        if webhook := {k: v for k, v in webhook.items() if v is not None}:
            overrides["webhook"] = webhook
    return load_config(args.config, overrides=overrides)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _schedule_table(records: list[ScheduleRecord]) -> Table:
    table = Table(title=f"Schedules ({len(records)})", header_style="bold")
    table.add_column("Key", style="bold green")
    table.add_column("TTL", justify="right")
    table.add_column("Retry", justify="right")
    table.add_column("Webhook")
    table.add_column("Expires")
    for rec in records:
        table.add_row(
            rec.key,
            str(rec.ttl),
            str(rec.retry),
            rec.webhook,
            rec.expires_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    return table


def _confirm(ok: bool, message: str) -> None:
    if ok:
        _console.print(f"[green]{message}[/green]")
    else:
        _console.print("[yellow]Service returned an empty confirmation.[/yellow]")


async def _cmd_ping(client: SchedulerClient, _args: argparse.Namespace) -> None:
    _console.print(f"[green]Scheduler at {client.config.instance_url} is reachable.[/green]")


async def _cmd_stats(client: SchedulerClient, _args: argparse.Namespace) -> None:
    stats = await client.get_stats()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold green")
    table.add_column()
    table.add_row("Total keys", str(stats.total_keys))
    table.add_row("Running schedules", str(stats.running_schedules))
    table.add_row("CPU usage", f"{stats.cpu_usage_percent}%")
    table.add_row("RAM usage", f"{stats.ram_usage_percent} ({stats.ram_usage_bytes} bytes)")
    table.add_row("Uptime", stats.system_uptime)
    table.add_row("Workers", str(stats.worker_count))
    _console.print(Panel(table, title="[bold]Scheduler Stats[/bold]", border_style="blue"))


async def _cmd_list(client: SchedulerClient, _args: argparse.Namespace) -> None:
    _console.print(_schedule_table(await client.get_all_schedules()))


async def _cmd_get(client: SchedulerClient, args: argparse.Namespace) -> None:
    record = await client.get_schedule(args.key)
    _console.print(_schedule_table([record]))
    _console.print(Panel(JSON.from_data(record.payload), title="[bold]Payload[/bold]"))


async def _cmd_schedule(client: SchedulerClient, args: argparse.Namespace) -> None:
    request = ScheduleRequest(webhook=args.webhook, ttl=args.ttl, payload=args.data)
    key = await client.schedule(request)
    _console.print(f"[green]Scheduled:[/green] {key}")


async def _cmd_update(client: SchedulerClient, args: argparse.Namespace) -> None:
    fields: dict[str, Any] = {"webhook": args.webhook, "ttl": args.ttl, "retry": args.retry}
    if args.data is not None:
        fields["payload"] = args.data
    ok = await client.update_schedule(args.key, ScheduleUpdate(**fields))
    _confirm(ok, "Updated.")


async def _cmd_delete(client: SchedulerClient, args: argparse.Namespace) -> None:
    ok = await client.delete_schedule(args.key)
    _confirm(ok, "Deleted.")


async def _cmd_delete_all(client: SchedulerClient, _args: argparse.Namespace) -> None:
    ok = await client.delete_all_schedules()
    _confirm(ok, "All schedules deleted.")


async def _cmd_listen(client: SchedulerClient, _args: argparse.Namespace) -> None:
    if not client.webhook_enabled:
        _console.print("[bold red]No webhook port configured (use --port).[/bold red]")
        return

    def _print_delivery(payload: Any) -> None:
        _console.print(
            Panel(JSON.from_data(payload), title="[bold]Delivery[/bold]", border_style="green"),
        )

    client.on(DATA_EVENT, _print_delivery)
    _console.print(
        f"[dim]Listening for deliveries on port {client.webhook_port} (Ctrl+C to stop)...[/dim]",
    )
    await asyncio.Event().wait()


_DISPATCH: dict[str, Command] = {
    "ping": _cmd_ping,
    "stats": _cmd_stats,
    "list": _cmd_list,
    "get": _cmd_get,
    "schedule": _cmd_schedule,
    "update": _cmd_update,
    "delete": _cmd_delete,
    "delete-all": _cmd_delete_all,
    "listen": _cmd_listen,
}


async def _run(config: ClientConfig, args: argparse.Namespace) -> None:
    set_log_context(operation="cli")
    async with await SchedulerClient.connect(config) as client:
        await _DISPATCH[args.command](client, args)


def run(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return the process exit code."""
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose, log_dir=args.log_dir)
    try:
        config = _resolve_config(args)
        asyncio.run(_run(config, args))
    except (SchedulerError, ValueError) as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        _console.print(f"[bold red]Error:[/bold red] {exc}")
        return 1
    except KeyboardInterrupt:
        _console.print("\n[dim]Stopped.[/dim]")
    return 0


def main() -> None:
    """CLI entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
