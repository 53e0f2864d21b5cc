"""Command-line interface for blockwarden."""

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import TypeVar

import click
from rich.console import Console
from rich.table import Table

from blockwarden.config import Config, find_config_file, load_config, merge_cli_options
from blockwarden.enforcement import EnforcementAdapter, HostsFileEnforcementPort
from blockwarden.errors import BlockwardenError, ProfileNotFound
from blockwarden.models import BlockingRule
from blockwarden.repository import ApiClient, ConfigRepository
from blockwarden.rules import RuleAggregator
from blockwarden.rules.defaults import APP_CATEGORY_MAPPING
from blockwarden.rules.schedule import describe_schedule
from blockwarden.session import FileAccessAuthorizer, SessionController, SystemdActivityScheduler
from blockwarden.storage import SharedStateStore

console = Console()
logger = logging.getLogger(__name__)

T = TypeVar("T")


def _run(ctx: click.Context, work: Callable[[RuleAggregator], Awaitable[T]]) -> T:
    """Run async work against a fresh API client, exiting 1 on domain errors."""
    cfg: Config = ctx.obj["config"]

    async def run() -> T:
        async with ApiClient(cfg.api_config()) as client:
            aggregator = RuleAggregator(
                ConfigRepository(client),
                cache_timeout=cfg.cache_timeout,
                store=_store(ctx),
                category_mapping={**APP_CATEGORY_MAPPING, **cfg.category_mapping},
            )
            return await work(aggregator)

    try:
        return asyncio.run(run())
    except BlockwardenError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def _store(ctx: click.Context) -> SharedStateStore:
    if "store" not in ctx.obj:
        ctx.obj["store"] = SharedStateStore(ctx.obj["config"].state_path)
    return ctx.obj["store"]


def _port(cfg: Config) -> HostsFileEnforcementPort:
    return HostsFileEnforcementPort(cfg.hosts_path, redirect_ip=cfg.redirect_ip)


def interval_end_command(cfg: Config, config_path: Path | None = None) -> list[str]:
    """Build the command the OS timer runs, pinned to this invocation's settings.

    The timer runs from another working directory with no CLI options, so
    every path is passed explicitly and made absolute.
    """
    command = ["blockwarden"]
    if config_path is not None:
        command += ["--config", str(Path(config_path).expanduser().absolute())]
    command += [
        "--api-url",
        cfg.api_base_url,
        "--state",
        str(cfg.state_path.expanduser().absolute()),
        "--hosts",
        str(cfg.hosts_path.expanduser().absolute()),
        "interval-end",
    ]
    return command


def _controller(ctx: click.Context, aggregator: RuleAggregator) -> SessionController:
    cfg: Config = ctx.obj["config"]
    return SessionController(
        aggregator,
        _store(ctx),
        _port(cfg),
        FileAccessAuthorizer(cfg.hosts_path),
        SystemdActivityScheduler(interval_end_command(cfg, ctx.obj.get("config_path"))),
    )


def _rules_table(title: str, rules: list[BlockingRule]) -> Table:
    table = Table(title=title)
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Pattern")
    table.add_column("Category")
    for rule in rules:
        table.add_row(rule.name, rule.kind.value, rule.pattern, rule.category.value)
    return table


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to config file (default: searches standard locations)",
)
@click.option("--api-url", type=str, default=None, help="Base URL of the block list API")
@click.option("--service-key", type=str, default=None, help="Service key for the API")
@click.option(
    "--state",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to the shared DuckDB state file",
)
@click.option("--hosts", type=click.Path(path_type=Path), default=None, help="Hosts file to enforce through")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output (debug logging)")
@click.pass_context
def main(
    ctx: click.Context,
    config: Path | None,
    api_url: str | None,
    service_key: str | None,
    state: Path | None,
    hosts: Path | None,
    verbose: bool,
) -> None:
    """blockwarden - Scheduled focus-session blocking."""
    ctx.ensure_object(dict)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Load config file, CLI options take precedence
    cfg = load_config(config)
    cfg = merge_cli_options(cfg, api_url=api_url, service_key=service_key, state=state, hosts=hosts)
    ctx.obj["config"] = cfg

    ctx.obj["config_path"] = config or find_config_file()


@main.command("lists")
@click.pass_context
def lists_cmd(ctx: click.Context) -> None:
    """Show block lists from the API."""

    async def work(aggregator: RuleAggregator) -> None:
        block_lists = await aggregator.get_block_lists()
        if not block_lists:
            console.print("[yellow]No block lists[/yellow]")
            return

        table = Table(title="Block Lists")
        table.add_column("ID", style="dim")
        table.add_column("Name")
        table.add_column("Active")
        table.add_column("Items", justify="right")
        table.add_column("Description")
        for block_list in block_lists:
            items = "?" if block_list.items is None else str(len(block_list.items))
            table.add_row(
                block_list.id,
                block_list.name,
                "[green]yes[/green]" if block_list.is_active else "[dim]no[/dim]",
                items,
                block_list.description[:50],
            )
        console.print(table)

    _run(ctx, work)


@main.command()
@click.pass_context
def schedules(ctx: click.Context) -> None:
    """Show schedules from the API."""

    async def work(aggregator: RuleAggregator) -> None:
        entries = await aggregator.get_schedules()
        if not entries:
            console.print("[yellow]No schedules[/yellow]")
            return

        table = Table(title="Schedules")
        table.add_column("ID", style="dim")
        table.add_column("Window")
        table.add_column("Active")
        table.add_column("Lists", justify="right")
        table.add_column("Direct Items", justify="right")
        for schedule in entries:
            table.add_row(
                schedule.id,
                describe_schedule(schedule),
                "[green]yes[/green]" if schedule.is_active else "[dim]no[/dim]",
                str(len(schedule.list_ids)),
                str(len(schedule.direct_item_ids)),
            )
        console.print(table)

    _run(ctx, work)


@main.command()
@click.option("--seed", is_flag=True, help="Ask the server to create its default catalog first")
@click.pass_context
def categories(ctx: click.Context, seed: bool) -> None:
    """Show the app category catalog."""

    async def work(aggregator: RuleAggregator) -> None:
        if seed:
            await aggregator.seed_app_categories()
        entries = await aggregator.get_app_categories()
        if not entries:
            console.print("[yellow]No app categories[/yellow]")
            return

        table = Table(title="App Categories")
        table.add_column("System ID")
        table.add_column("Name")
        table.add_column("Active")
        table.add_column("Description")
        for category in entries:
            table.add_row(
                category.system_id,
                category.name,
                "[green]yes[/green]" if category.is_active else "[dim]no[/dim]",
                category.description[:50],
            )
        console.print(table)

    _run(ctx, work)


@main.command()
@click.option("--at", "at_str", type=str, default=None, help="ISO timestamp (default: now)")
@click.pass_context
def active(ctx: click.Context, at_str: str | None) -> None:
    """Show the rules that apply at an instant."""
    try:
        at = datetime.fromisoformat(at_str) if at_str else datetime.now()
    except ValueError:
        console.print(f"[red]Error: invalid timestamp '{at_str}'[/red]")
        sys.exit(1)

    async def work(aggregator: RuleAggregator) -> None:
        await aggregator.get_app_categories()
        rules = await aggregator.compute_active_rules(at)
        if not rules:
            console.print(f"[green]Nothing blocked at {at.strftime('%Y-%m-%d %H:%M')}[/green]")
            return
        console.print(_rules_table(f"Active Rules at {at.strftime('%Y-%m-%d %H:%M')}", rules))

    _run(ctx, work)


@main.group()
def session() -> None:
    """Start, stop and inspect focus sessions."""


@session.command("start")
@click.option("--minutes", type=int, required=True, help="Session length in minutes")
@click.option("--list", "list_id", type=str, default=None, help="Block list id (default: last or default list)")
@click.pass_context
def session_start(ctx: click.Context, minutes: int, list_id: str | None) -> None:
    """Block now and schedule the end of the session."""

    async def work(aggregator: RuleAggregator) -> tuple[str, datetime]:
        controller = _controller(ctx, aggregator)
        await controller.request_authorization()
        resolved = await controller.enable_blocking(list_id)
        _, end = controller.start_monitoring(minutes * 60)
        return resolved, end

    resolved, end = _run(ctx, work)
    console.print(
        f"[green]Blocking list {resolved} until {end.strftime('%H:%M')} ({minutes} min)[/green]"
    )


@session.command("stop")
@click.pass_context
def session_stop(ctx: click.Context) -> None:
    """End the session and lift all blocks."""

    async def work(aggregator: RuleAggregator) -> None:
        _controller(ctx, aggregator).stop_monitoring()

    _run(ctx, work)
    console.print("[green]Session stopped[/green]")


@session.command("status")
@click.pass_context
def session_status(ctx: click.Context) -> None:
    """Show the current session."""
    store = _store(ctx)
    current = store.get_session()
    remaining = store.remaining_time()

    if not current.is_active or remaining is None:
        console.print("[dim]No active session[/dim]")
        if current.last_active_list_id:
            console.print(f"[dim]Last list: {current.last_active_list_id}[/dim]")
        return

    minutes, seconds = divmod(int(remaining.total_seconds()), 60)
    console.print(f"[green]Session active[/green], {minutes}m {seconds:02d}s remaining")
    console.print(f"  Started: {current.start_time.strftime('%Y-%m-%d %H:%M:%S')}")
    if current.last_active_list_id:
        console.print(f"  List: {current.last_active_list_id}")
    if store.has_stored_selection:
        console.print("  Stored selection: yes")


def _interval(ctx: click.Context, session_id: str, callback_name: str) -> None:
    cfg: Config = ctx.obj["config"]

    async def run() -> None:
        store = _store(ctx)
        async with ApiClient(cfg.api_config()) as client:
            aggregator = RuleAggregator(
                ConfigRepository(client),
                cache_timeout=cfg.cache_timeout,
                store=store,
                category_mapping={**APP_CATEGORY_MAPPING, **cfg.category_mapping},
            )
            adapter = EnforcementAdapter(
                store,
                _port(cfg),
                aggregator,
                time_saved_per_block=cfg.time_saved_per_block,
            )
            callback = getattr(adapter, callback_name)
            await callback(session_id, lambda: logger.debug(f"{callback_name} done"))

    try:
        asyncio.run(run())
    except Exception:
        # The OS scheduler only needs to know the callback ran
        logger.exception(f"{callback_name} failed for {session_id}")


@main.command("interval-start")
@click.argument("session_id")
@click.pass_context
def interval_start(ctx: click.Context, session_id: str) -> None:
    """Entry point for the scheduler at the start of an interval."""
    _interval(ctx, session_id, "interval_did_start")


@main.command("interval-end")
@click.argument("session_id")
@click.pass_context
def interval_end(ctx: click.Context, session_id: str) -> None:
    """Entry point for the scheduler at the end of an interval."""
    _interval(ctx, session_id, "interval_did_end")


@main.command()
@click.option("--rules", "show_rules", is_flag=True, help="Also list each profile's rules")
@click.pass_context
def profiles(ctx: click.Context, show_rules: bool) -> None:
    """Show blocking profiles."""

    async def work(aggregator: RuleAggregator) -> None:
        table = Table(title="Blocking Profiles")
        table.add_column("Name")
        table.add_column("Active")
        table.add_column("Rules", justify="right")
        table.add_column("Schedule")
        table.add_column("Description")
        for profile in aggregator.profiles:
            table.add_row(
                profile.name,
                "[green]yes[/green]" if profile.is_active else "[dim]no[/dim]",
                str(len(profile.rules)),
                describe_schedule(profile.schedule) if profile.schedule else "",
                profile.description[:50],
            )
        console.print(table)

        if show_rules:
            for profile in aggregator.profiles:
                if profile.rules:
                    console.print(_rules_table(profile.name, profile.rules))
            console.print(_rules_table("Default Rules", aggregator.default_rules))

    _run(ctx, work)


@main.group()
def profile() -> None:
    """Manage blocking profiles."""


@profile.command("activate")
@click.argument("name")
@click.pass_context
def profile_activate(ctx: click.Context, name: str) -> None:
    """Make NAME the only active profile."""

    async def work(aggregator: RuleAggregator) -> None:
        target = aggregator.find_profile(name)
        if target is None:
            raise ProfileNotFound(f"No profile named '{name}'")
        await aggregator.activate_profile(target.id)

    _run(ctx, work)
    console.print(f"[green]Profile '{name}' active[/green]")


@profile.command("deactivate")
@click.pass_context
def profile_deactivate(ctx: click.Context) -> None:
    """Deactivate every profile."""

    async def work(aggregator: RuleAggregator) -> None:
        await aggregator.deactivate_profiles()

    _run(ctx, work)
    console.print("[green]No profile active[/green]")


@main.command()
@click.option("--reset", is_flag=True, help="Reset all counters")
@click.pass_context
def stats(ctx: click.Context, reset: bool) -> None:
    """Show blocking statistics."""
    store = _store(ctx)
    if reset:
        store.reset_statistics()
        console.print("[green]Statistics reset[/green]")
        return

    snapshot = store.load_statistics()
    if snapshot.blocked_requests_count == 0:
        console.print("[yellow]Nothing blocked yet[/yellow]")
        return

    hours, remainder = divmod(int(snapshot.time_saved_seconds), 3600)
    console.print(f"[bold]Blocked requests:[/bold] {snapshot.blocked_requests_count}")
    console.print(f"[bold]Time saved:[/bold] {hours}h {remainder // 60}m")
    if snapshot.most_blocked_domain:
        console.print(f"[bold]Most blocked domain:[/bold] {snapshot.most_blocked_domain}")
    if snapshot.most_blocked_app:
        console.print(f"[bold]Most blocked app:[/bold] {snapshot.most_blocked_app}")

    table = Table(title="Blocks per Category")
    table.add_column("Category")
    table.add_column("Blocked", justify="right")
    for category, count in sorted(snapshot.blocked_by_category.items(), key=lambda kv: -kv[1]):
        table.add_row(category, str(count))
    console.print(table)

    table = Table(title="Blocks per Day")
    table.add_column("Day")
    table.add_column("Blocked", justify="right")
    for day in sorted(snapshot.blocked_by_day, reverse=True)[:14]:
        table.add_row(day.isoformat(), str(snapshot.blocked_by_day[day]))
    console.print(table)


@main.command("reset-state")
@click.confirmation_option(prompt="Clear the shared session state?")
@click.pass_context
def reset_state(ctx: click.Context) -> None:
    """Clear all shared session keys (statistics are kept)."""
    _store(ctx).clear_all()
    console.print("[green]Shared state cleared[/green]")


if __name__ == "__main__":
    main()
