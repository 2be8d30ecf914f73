#!/usr/bin/env python3
"""Stock Alert - CLI Entry Point."""
import sys
import time
import logging
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.table import Table

from __version__ import __version__

console = Console()

PRIORITY_STYLES = {"high": "bold red", "medium": "yellow", "low": "blue"}


def init_components(config_path=None, verbose=False):
    """Build the catalog, engine, dispatcher and manager from config."""
    from utils.logger import setup_logging
    from config import load_config, DEFAULT_RULES_PATH
    from models.database import Database
    from alerts.rules_manager import RulesManager
    from alerts.engine import AlertEngine
    from alerts.channels import EmailChannel, SMSChannel
    from alerts.sinks import ConsoleSink, FileSink, MultiSink
    from alerts.manager import AlertManager, Recipients
    from notifications.dispatcher import NotificationDispatcher
    from notifications.email_sender import EmailSender
    from notifications.sms_sender import SMSSender

    config = load_config(config_path)
    log_cfg = config.get("logging", {})
    setup_logging("DEBUG" if verbose else log_cfg.get("level", "INFO"), log_cfg.get("file"))

    db = Database(config["database"]["path"])
    db.connect()

    rules = RulesManager(config["alerts"].get("rules_path") or DEFAULT_RULES_PATH)
    engine = AlertEngine(db, rules.get_all_rules(), history_limit=config["alerts"]["history_limit"])

    notif_cfg = config["notifications"]
    channels = []
    if config["email"].get("enabled", True):
        channels.append(EmailChannel(EmailSender(config)))
    if config["sms"].get("enabled", True):
        channels.append(SMSChannel(SMSSender(config)))
    dispatcher = NotificationDispatcher(
        channels,
        in_app_limit=notif_cfg["in_app_limit"],
        history_limit=notif_cfg["history_limit"],
        channel_timeout=notif_cfg["channel_timeout_seconds"],
    )

    sinks = []
    # Console only if running interactively
    if sys.stdout.isatty():
        sinks.append(ConsoleSink(console))
    if notif_cfg.get("events_log"):
        sinks.append(FileSink(notif_cfg["events_log"]))

    manager = AlertManager(
        engine, dispatcher,
        recipients=Recipients.from_config(config),
        sink=MultiSink(sinks),
        interval_minutes=config["monitor"]["interval_minutes"],
    )

    return {
        "config": config, "db": db, "rules": rules, "engine": engine,
        "dispatcher": dispatcher, "manager": manager,
    }


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="stockalert")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Stock Alert - inventory alert rules, monitoring & notifications."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
        ctx.call_on_close(ctx.obj["_components"]["db"].close)
    return ctx.obj["_components"]


def _priority(priority):
    style = PRIORITY_STYLES.get(priority, "")
    return f"[{style}]{priority}[/{style}]" if style else priority


def _print_alerts(engine, alerts):
    if not alerts:
        console.print("[green]All clear - no alerts triggered[/green]")
        return
    console.print(f"[bold yellow]{len(alerts)} alert(s) triggered:[/bold yellow]")
    for line in engine.format_alert_summary(alerts).splitlines():
        console.print(f"  {line}", markup=False)


# ──────────────────────────────────────────────────────
# RULES
# ──────────────────────────────────────────────────────
@cli.group()
def rules():
    """Alert rule management."""
    pass


@rules.command("list")
@click.pass_context
def rules_list(ctx):
    """List all configured alert rules."""
    from utils.formatters import time_ago

    c = _get_components(ctx)
    table = Table(title="Alert Rules", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Condition")
    table.add_column("Priority")
    table.add_column("Channels")
    table.add_column("Last Triggered")
    table.add_column("Enabled")
    for r in c["engine"].list_rules():
        condition = f"{r.condition} {r.threshold:g}"
        if r.product_id is not None:
            condition += f" (product {r.product_id})"
        table.add_row(r.id, r.name, condition, _priority(r.priority), ", ".join(r.channels),
                      time_ago(r.last_triggered), "[green]✓[/green]" if r.enabled else "[red]✗[/red]")
    console.print(table)


@rules.command("test")
@click.pass_context
def rules_test(ctx):
    """Evaluate every rule against the catalog without triggering anything."""
    c = _get_components(ctx)
    results = c["engine"].preview_rules()

    table = Table(title="Alert Rules Test", show_header=True)
    table.add_column("Rule")
    table.add_column("Condition")
    table.add_column("Would Fire")
    table.add_column("Enabled")
    table.add_column("Message")
    for r in results:
        if r["error"]:
            fire_str = "[red]error[/red]"
            message = r["error"]
        else:
            fire_str = "[green]YES[/green]" if r["would_fire"] else "[dim]no[/dim]"
            message = r["message"]
        table.add_row(r["name"], f"{r['condition']} {r['threshold']:g}", fire_str,
                      "✓" if r["enabled"] else "✗", message)
    console.print(table)


@rules.command("parse")
@click.argument("text")
def rules_parse(text):
    """Show how a natural-language instruction would be compiled (nothing is saved)."""
    from alerts.compiler import RuleCompiler

    result = RuleCompiler().compile(text)
    if not result.success:
        console.print(f"[red]✗ {result.error}[/red]")
        console.print("Try something like:")
        for s in result.suggestions:
            console.print(f"  [dim]•[/dim] {s}")
        sys.exit(1)

    rule = result.rule
    console.print(f"[green]✓[/green] Will monitor {result.description}")
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    for key in ("name", "type", "condition", "threshold", "priority", "channels", "product_id"):
        value = rule[key]
        if isinstance(value, list):
            value = ", ".join(value)
        table.add_row(key, "-" if value is None else str(value))
    console.print(table)


@rules.command("add")
@click.argument("text")
@click.option("--save", is_flag=True, help="Persist the rule to alerts.rules_path")
@click.pass_context
def rules_add(ctx, text, save):
    """Create an alert rule from a natural-language instruction."""
    c = _get_components(ctx)
    result = c["manager"].create_alert_from_natural_language(text)
    if not result["success"]:
        console.print(f"[red]✗ {result['message']}[/red]")
        for s in result["suggestions"]:
            console.print(f"  [dim]•[/dim] {s}")
        sys.exit(1)

    rule = result["rule"]
    console.print(f"[green]✓[/green] {result['message']} ({rule.id})")
    console.print(f"  {result['description']}")

    if save:
        if not c["config"]["alerts"].get("rules_path"):
            console.print("[yellow]Set alerts.rules_path in your config to save rules.[/yellow]")
            sys.exit(1)
        c["rules"].save_rule(rule)
        console.print(f"  Saved to {c['rules'].rules_path}")


# ──────────────────────────────────────────────────────
# CHECK / STATUS / RUN
# ──────────────────────────────────────────────────────
@cli.command()
@click.pass_context
def check(ctx):
    """Evaluate all enabled alert rules once and dispatch notifications."""
    c = _get_components(ctx)
    result = c["manager"].check_alerts_now()
    _print_alerts(c["engine"], result["triggered"])


@cli.command()
@click.pass_context
def status(ctx):
    """Show alert system status."""
    from utils.formatters import time_ago

    c = _get_components(ctx)
    s = c["manager"].get_system_status()
    engine = s["alert_engine"]
    notif = s["notifications"]

    table = Table(title="Alert System Status", show_header=False)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Products", str(c["db"].product_count()))
    table.add_row("Rules", f"{engine['enabled_rules']} enabled / {engine['total_rules']} total")
    table.add_row("Alerts", f"{engine['total_alerts']} ({engine['unacknowledged_alerts']} unacknowledged)")
    table.add_row("Notifications", f"{notif['total']} sent, {notif['unread']} unread in-app")
    table.add_row("Recipients", f"{s['recipients']['email']} email, {s['recipients']['phone']} phone")
    table.add_row("Last check", time_ago(engine["last_check"]))
    for name, ch in (("email", c["config"]["email"]), ("sms", c["config"]["sms"])):
        if name in notif["disabled_channels"]:
            state = "[red]disabled[/red]"
        elif ch.get("enabled", True):
            state = "[green]enabled[/green]"
        else:
            state = "[dim]off[/dim]"
        table.add_row(f"{name.upper()} channel", state)
    console.print(table)


@cli.command()
@click.option("--interval", default=None, type=float, help="Minutes between checks")
@click.option("--rule", "rule_texts", multiple=True, help="Extra natural-language rule (repeatable)")
@click.pass_context
def run(ctx, interval, rule_texts):
    """Run the alert monitor in the foreground until Ctrl+C."""
    c = _get_components(ctx)
    manager = c["manager"]

    for text in rule_texts:
        result = manager.create_alert_from_natural_language(text)
        if result["success"]:
            console.print(f"[green]✓[/green] {result['message']}")
        else:
            console.print(f"[red]✗ {text!r}: {result['message']}[/red]")

    if interval is not None:
        if interval <= 0:
            raise click.BadParameter("must be positive", param_hint="--interval")
        manager.interval_minutes = interval

    console.print(f"[bold]Monitoring {len(c['engine'].get_enabled_rules())} rule(s) "
                  f"every {manager.interval_minutes:g} min.[/bold] Press Ctrl+C to stop.\n")
    manager.initialize()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopping...[/dim]")
    finally:
        manager.shutdown()


@cli.command()
@click.option("--port", default=None, type=int, help="Port to bind to")
@click.option("--host", default=None, type=str, help="Host to bind to")
@click.pass_context
def serve(ctx, port, host):
    """Launch the JSON API with background monitoring."""
    from web.app import create_app

    c = _get_components(ctx)
    web_cfg = c["config"].get("web", {})
    host = host or web_cfg.get("host", "127.0.0.1")
    port = port or web_cfg.get("port", 5000)

    app = create_app(c["manager"])
    c["manager"].initialize()

    console.print(f"\n[bold]Stock Alert API[/bold]")
    console.print(f"  Local:    http://{host}:{port}/api/status")
    console.print(f"\n  Press Ctrl+C to stop.\n")
    try:
        app.run(host=host, port=port, debug=False)
    finally:
        c["manager"].shutdown()


# ──────────────────────────────────────────────────────
# PRODUCTS
# ──────────────────────────────────────────────────────
@cli.group()
def products():
    """Product catalog management."""
    pass


@products.command("list")
@click.option("--low", default=None, type=int, help="Only products with stock below this")
@click.pass_context
def products_list(ctx, low):
    """List products in the catalog."""
    from utils.formatters import format_usd

    c = _get_components(ctx)
    db = c["db"]
    items = db.list_products() if low is None else db.query_low_stock(low) + db.query_out_of_stock()
    if not items:
        console.print("[dim]No products found[/dim]")
        return

    table = Table(title="Products", show_header=True)
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Name")
    table.add_column("Unit Price", justify="right")
    table.add_column("Stock", justify="right")
    table.add_column("Value", justify="right")
    for p in sorted(items, key=lambda p: p.id):
        stock = "[red]0[/red]" if p.units_in_stock == 0 else str(p.units_in_stock)
        table.add_row(str(p.id), p.name, format_usd(p.unit_price), stock, format_usd(p.stock_value))
    console.print(table)
    console.print(f"Total inventory value: [bold]{format_usd(db.compute_inventory_value())}[/bold]")


@products.command("import")
@click.argument("csv_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def products_import(ctx, csv_path):
    """Import products from a CSV (id,name,unit_price,units_in_stock)."""
    c = _get_components(ctx)
    try:
        count = c["db"].import_csv(csv_path)
    except (ValueError, KeyError) as e:
        console.print(f"[red]Import failed: {e}[/red]")
        sys.exit(1)
    console.print(f"[green]✓[/green] Imported {count} product(s)")


@products.command("set-stock")
@click.argument("product_id", type=int)
@click.argument("units", type=click.IntRange(min=0))
@click.pass_context
def products_set_stock(ctx, product_id, units):
    """Set the units in stock for a product."""
    c = _get_components(ctx)
    if not c["db"].set_stock(product_id, units):
        console.print(f"[red]Product {product_id} not found[/red]")
        sys.exit(1)
    console.print(f"[green]✓[/green] Product {product_id} stock set to {units}")


# ──────────────────────────────────────────────────────
# NOTIFY
# ──────────────────────────────────────────────────────
@cli.group()
def notify():
    """Notification channels."""
    pass


@notify.command("test")
@click.option("--channel", "channels", multiple=True, default=("in-app",),
              type=click.Choice(["in-app", "email", "sms"]), help="Channel to test (repeatable)")
@click.pass_context
def notify_test(ctx, channels):
    """Send a test alert through the selected channels."""
    from models.alerts import Alert

    c = _get_components(ctx)
    manager = c["manager"]
    alert = Alert(
        rule_id="notify-test",
        rule_name="Test Alert",
        type="inventory",
        priority="high",
        message="Stock Alert test - notifications are working!",
        channels=list(channels),
    )
    notification = c["dispatcher"].send_notification(alert, manager.default_recipients)

    failed = False
    for channel, outcome in notification.status.items():
        if outcome.get("success"):
            console.print(f"[green]✓[/green] {channel}")
        else:
            failed = True
            console.print(f"[red]✗[/red] {channel}: {outcome.get('error')}")
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    cli()
