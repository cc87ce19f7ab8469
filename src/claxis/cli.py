"""CLI interface for Claxis.

Runs the decision engine against the local SQLite stores and
~/.claxis/salons.yaml. Every command is a thin wrapper over one engine
operation, so the CLI sees exactly what the HTTP API sees.

Quick start:
    claxis settings ai salon-1 --set deepseek_enabled=true
    claxis inbound salon-1 conv-9 --customer cust-4
    claxis route salon-1 conv-9 "My booking app shows an error"
    claxis timing salon-1 conv-9 "Thanks, see you then" -u low
    claxis usage stats salon-1 -d 7
    claxis serve
"""

import asyncio
import json
import logging
from typing import Any

import typer
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from claxis import __version__
from claxis.config import load_engine_config
from claxis.engine import DecisionEngine, OperationResult
from claxis.errors import ClaxisError

app = typer.Typer(
    name="claxis",
    help="Decision core for salon conversation automation",
    no_args_is_help=True,
)

# Sub-command groups
usage_app = typer.Typer(help="AI usage, model performance and budget allocation")
app.add_typer(usage_app, name="usage")

settings_app = typer.Typer(help="Per-salon AI and service window settings")
app.add_typer(settings_app, name="settings")

console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Decision core for salon conversation automation."""
    try:
        level = load_engine_config().log_level
    except ClaxisError:
        level = "WARNING"
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _execute(operation: str, salon_id: str, params: dict[str, Any]) -> OperationResult:
    """Run one engine operation and drain the audit writes before exiting."""

    async def run() -> OperationResult:
        engine = DecisionEngine.from_config(load_engine_config())
        try:
            return await engine.execute(operation, salon_id, params)
        finally:
            await engine.close()

    try:
        result = asyncio.run(run())
    except ClaxisError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    if not result.ok:
        console.print(f"[red]{result.payload['error_code']}: {result.payload['error_message']}[/red]")
        for error in result.payload.get("error_details", {}).get("validation_errors", []):
            console.print(f"  [dim]- {error}[/dim]")
        raise typer.Exit(1)
    return result


def _context(
    salon_id: str,
    conversation_id: str,
    customer: str | None,
    sentiment: str,
    booking_probability: float,
) -> dict[str, Any]:
    context: dict[str, Any] = {
        "id": conversation_id,
        "salon_id": salon_id,
        "customer_sentiment": sentiment,
        "booking_probability": booking_probability,
    }
    if customer:
        context["customer_id"] = customer
    return context


def _parse_assignments(assignments: list[str]) -> dict[str, Any]:
    """key=value pairs with YAML scalar values (true, 0.5, en...)."""
    changes = {}
    for item in assignments:
        key, sep, raw = item.partition("=")
        if not sep or not key.strip():
            console.print(f"[red]Expected key=value, got: {item}[/red]")
            raise typer.Exit(1)
        changes[key.strip()] = yaml.safe_load(raw)
    return changes


def _money(value: float) -> str:
    return f"€{value:.4f}"


# ═══════════════════════════════════════════════════════════════
# Decisions
# ═══════════════════════════════════════════════════════════════

@app.command()
def route(
    salon_id: str = typer.Argument(..., help="Salon id"),
    conversation_id: str = typer.Argument(..., help="Conversation id"),
    message: str = typer.Argument(..., help="Customer message"),
    request_type: str = typer.Option("general_inquiry", "--type", "-t", help="snake_case request type"),
    priority: str = typer.Option("normal", "--priority", help="Caller priority"),
    mode: str = typer.Option(None, "--mode", "-m",
                             help="cost_efficiency|quality|balanced|speed|premium"),
    max_cost: float = typer.Option(1.0, "--max-cost", help="Per-request ceiling in EUR"),
    enforce: bool = typer.Option(False, "--enforce", help="Enforce the budget limits"),
    customer: str = typer.Option(None, "--customer", "-c", help="Customer id"),
    message_count: int = typer.Option(0, "--message-count", help="Messages so far"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw decision"),
) -> None:
    """Choose the AI provider for a customer message.

    Example:
        claxis route salon-1 conv-9 "Can I book for tomorrow?" -t booking_request
    """
    context = _context(salon_id, conversation_id, customer, "unknown", 0.0)
    context["message_count"] = message_count
    result = _execute("route_ai_request", salon_id, {
        "message_content": message,
        "request_type": request_type,
        "priority": priority,
        "conversation_context": context,
        "budget_constraints": {"max_cost_euros": max_cost, "enforce_limit": enforce},
        "optimization_mode": mode,
    })
    decision = result.payload

    if as_json:
        console.print_json(json.dumps(decision))
        return

    outcome = decision["routing_decision"]
    color = "green" if outcome == "model_selected" else "yellow"
    console.print(Panel(
        f"[bold {color}]{outcome}[/bold {color}] -> [bold cyan]{decision['selected_model']}[/bold cyan]\n"
        f"{decision['reasoning']}\n\n"
        f"Strategy: {decision['strategy']} | Mode: {decision['optimization_mode']} | "
        f"Confidence: {decision['confidence_score']:.2f} | "
        f"Cost: {_money(decision['estimated_cost_euros'])} | Channel: {result.channel.value}",
        title="Routing",
        border_style=color,
    ))

    if decision["candidates"]:
        table = Table(title="Candidates")
        table.add_column("Model", style="cyan")
        table.add_column("Quality", justify="right")
        table.add_column("Speed", justify="right")
        table.add_column("Cost", justify="right")
        table.add_column("History", justify="right")
        table.add_column("Total", justify="right", style="bold")
        table.add_column("Est. cost", justify="right", style="green")
        for c in decision["candidates"]:
            table.add_row(
                c["model"],
                f"{c['quality_score']:.2f}",
                f"{c['speed_score']:.2f}",
                f"{c['cost_score']:.2f}",
                f"{c['historical_score']:.2f}",
                f"{c['total_score']:.3f}",
                _money(c["estimated_cost"]),
            )
        console.print(table)

    for alt in decision["alternatives"]:
        console.print(f"[dim]Alternative: {alt['model']} ({alt.get('reasoning') or alt.get('trade_offs')})[/dim]")


@app.command()
def timing(
    salon_id: str = typer.Argument(..., help="Salon id"),
    conversation_id: str = typer.Argument(..., help="Conversation id"),
    message: str = typer.Argument("", help="Customer message being answered"),
    urgency: str = typer.Option("medium", "--urgency", "-u", help="low|medium|high|urgent"),
    booking_probability: float = typer.Option(0.0, "--booking-probability", "-b", help="0..1"),
    sentiment: str = typer.Option("unknown", "--sentiment", "-s",
                                  help="positive|neutral|negative|unknown"),
    customer: str = typer.Option(None, "--customer", "-c", help="Customer id"),
    override: bool = typer.Option(False, "--override-safety", help="Let urgent messages be delayed"),
) -> None:
    """Decide whether to send a reply now or delay it into the free window.

    Example:
        claxis timing salon-1 conv-9 "Thanks!" -u low -c cust-4
    """
    result = _execute("optimize_response_timing", salon_id, {
        "message_content": message,
        "conversation_context": _context(
            salon_id, conversation_id, customer, sentiment, booking_probability),
        "customer_urgency": urgency,
        "booking_probability": booking_probability,
        "override_safety_checks": override,
    })
    decision = result.payload

    if decision["should_optimize"]:
        headline = f"[bold green]Delay {decision['delay_minutes']} minutes[/bold green]"
        border = "green"
    else:
        headline = "[bold yellow]Send now[/bold yellow]"
        border = "yellow"

    lines = [
        headline,
        decision["reasoning"],
        "",
        f"Decided in: {decision['decided_in']} | "
        f"Confidence: {decision['optimization_confidence']:.2f} | "
        f"Savings: {_money(decision['estimated_savings_euros'])}",
    ]
    if decision["risk_factors"]:
        lines.append(f"Risk factors: {', '.join(decision['risk_factors'])}")
    if decision["alternative_actions"]:
        lines.append(f"Next: {', '.join(decision['alternative_actions'])}")
    console.print(Panel("\n".join(lines), title="Response timing", border_style=border))


@app.command()
def cost(
    salon_id: str = typer.Argument(..., help="Salon id"),
    conversation_id: str = typer.Argument(..., help="Conversation id"),
) -> None:
    """Show what a reply sent right now would cost."""
    result = _execute("analyze_message_cost", salon_id, {
        "conversation_context": {"id": conversation_id, "salon_id": salon_id},
    })
    analysis = result.payload

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    active = analysis["service_window_active"]
    table.add_row("Service window", "[green]open[/green]" if active else "[yellow]closed[/yellow]")
    table.add_row("Expires at", analysis["window_expires_at"] or "-")
    table.add_row("Hours remaining", f"{analysis['hours_remaining']:.2f}")
    since = analysis["hours_since_last_message"]
    table.add_row("Hours since last message", f"{since:.2f}" if since is not None else "-")
    table.add_row("Reply cost", _money(analysis["template_cost_euros"]))
    console.print(table)


@app.command()
def inbound(
    salon_id: str = typer.Argument(..., help="Salon id"),
    conversation_id: str = typer.Argument(..., help="Conversation id"),
    customer: str = typer.Option(None, "--customer", "-c", help="Customer id"),
    received_at: str = typer.Option(None, "--at", help="ISO 8601 timestamp, defaults to now"),
) -> None:
    """Record an inbound customer message (opens the free window)."""
    _execute("record_inbound_message", salon_id, {
        "conversation_id": conversation_id,
        "customer_id": customer,
        "received_at": received_at,
    })
    console.print(f"[green]Recorded inbound message on {conversation_id}[/green]")


@app.command()
def savings(
    salon_id: str = typer.Argument(..., help="Salon id"),
    days: int = typer.Option(30, "--days", "-d", help="Period in days"),
) -> None:
    """Show template spend avoided by delayed replies.

    Example:
        claxis savings salon-1 -d 7
    """
    potential = _execute("calculate_savings_potential", salon_id, {"calculation_period": days}).payload
    stats = _execute("get_optimization_stats", salon_id, {"calculation_period": days}).payload

    console.print(Panel(f"[bold]Timing savings - last {days} days[/bold]", border_style="cyan"))

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Decisions", f"{stats['total_decisions']:,}")
    table.add_row("Delayed replies", f"{stats['messages_optimized']:,}")
    table.add_row("Optimization rate", f"{stats['optimization_rate']:.1f}%")
    table.add_row("Average delay", f"{stats['average_delay_minutes']:.0f} min")
    table.add_row("Paid templates", f"{potential['paid_templates']:,}")
    table.add_row("Template cost without delays", _money(potential["current_template_cost"]))
    table.add_row("Saved", f"[green]{_money(potential['potential_savings_euros'])}[/green]")
    table.add_row("Monthly projection", _money(potential["monthly_savings_euros"]))
    table.add_row("ROI", f"{potential['roi_percentage']:.1f}%")
    console.print(table)

    for rec in potential["recommendations"]:
        console.print(f"  [dim]- {rec}[/dim]")


# ═══════════════════════════════════════════════════════════════
# Usage
# ═══════════════════════════════════════════════════════════════

@usage_app.command("stats")
def usage_stats(
    salon_id: str = typer.Argument(..., help="Salon id"),
    days: int = typer.Option(30, "--days", "-d", help="Period in days"),
) -> None:
    """Show AI usage per model against the monthly budget."""
    stats = _execute("get_ai_usage_stats", salon_id, {"calculation_period": days}).payload
    summary = stats["usage_summary"]
    budget = stats["budget_status"]

    console.print()
    console.print(Panel(f"[bold]AI usage - last {days} days[/bold]", border_style="cyan"))

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Requests", f"{summary['total_requests']:,}")
    table.add_row("Total cost", _money(summary["total_cost_euros"]))
    table.add_row("Requests/day", f"{summary['average_requests_per_day']:.1f}")
    table.add_row("Cost/day", _money(summary["average_cost_per_day_euros"]))
    console.print(table)

    if stats["model_breakdown"]:
        console.print()
        model_table = Table(title="Models Used")
        model_table.add_column("Model", style="cyan")
        model_table.add_column("Requests", justify="right")
        model_table.add_column("Cost", justify="right", style="green")
        model_table.add_column("Avg cost", justify="right")
        model_table.add_column("Avg confidence", justify="right")
        for model, usage in stats["model_breakdown"].items():
            model_table.add_row(
                model,
                str(usage["requests"]),
                _money(usage["cost_euros"]),
                _money(usage["avg_cost_euros"]),
                f"{usage['avg_confidence']:.2f}",
            )
        console.print(model_table)

    pct = budget["budget_utilization_percentage"]
    color = "green" if pct < 50 else ("yellow" if pct < 80 else "red")
    console.print(
        f"\n[{color}]Budget: {_money(summary['total_cost_euros'])} / "
        f"€{budget['monthly_budget_euros']:.2f} ({pct:.0f}%)[/{color}]"
    )


@usage_app.command("performance")
def usage_performance(
    salon_id: str = typer.Argument(..., help="Salon id"),
    days: int = typer.Option(30, "--days", "-d", help="Period in days"),
) -> None:
    """Show per-model performance and latency percentiles."""
    report = _execute("analyze_model_performance", salon_id, {"calculation_period": days}).payload

    table = Table(title=f"Model performance (last {days} days)")
    table.add_column("Model", style="cyan")
    table.add_column("Requests", justify="right")
    table.add_column("Cost", justify="right", style="green")
    table.add_column("Avg time", justify="right")
    table.add_column("Success", justify="right")
    for model, m in report["model_metrics"].items():
        table.add_row(
            model,
            str(m["total_requests"]),
            _money(m["total_cost_euros"]),
            f"{m['avg_response_time_ms']:.0f}ms",
            f"{m['success_rate']:.2f}",
        )
    console.print(table)

    times = report["response_times"]
    console.print(f"p50 {times['p50']:.0f}ms | p95 {times['p95']:.0f}ms | p99 {times['p99']:.0f}ms")
    for opportunity in report["optimization_opportunities"]:
        console.print(f"  [dim]- {opportunity}[/dim]")


@usage_app.command("allocation")
def usage_allocation(
    salon_id: str = typer.Argument(..., help="Salon id"),
    mode: str = typer.Option(None, "--mode", "-m",
                             help="cost_efficiency|quality|balanced|speed|premium"),
) -> None:
    """Recommend a per-model budget split for a mode."""
    report = _execute("optimize_ai_budget", salon_id, {"optimization_mode": mode}).payload

    table = Table(title=f"Budget allocation ({report['optimization_mode']})")
    table.add_column("Model", style="cyan")
    table.add_column("Current", justify="right")
    table.add_column("Recommended", justify="right", style="green")
    models = dict.fromkeys([*report["current_allocation"], *report["recommended_allocation"]])
    for model in models:
        table.add_row(
            model,
            f"{report['current_allocation'].get(model, 0.0) * 100:.0f}%",
            f"{report['recommended_allocation'].get(model, 0.0) * 100:.0f}%",
        )
    console.print(table)
    console.print(
        f"Projected savings: {_money(report['projected_savings'])} | "
        f"Quality impact: {report['quality_impact']} | Priority: {report['implementation_priority']}"
    )


# ═══════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════

@settings_app.command("show")
def settings_show(salon_id: str = typer.Argument(..., help="Salon id")) -> None:
    """Print a salon's settings."""
    from claxis.config import YamlSalonConfigProvider

    settings = asyncio.run(YamlSalonConfigProvider().get(salon_id))
    if settings is None:
        console.print(f"[red]Salon not found: {salon_id}[/red]")
        raise typer.Exit(1)
    console.print(yaml.dump(settings.model_dump(mode="json"), default_flow_style=False))


def _print_update(update: dict[str, Any]) -> None:
    table = Table(title="Settings updated")
    table.add_column("Setting", style="cyan")
    table.add_column("Old")
    table.add_column("New", style="green")
    for key in update["changes_applied"]:
        table.add_row(key, str(update["old_settings"].get(key)), str(update["new_settings"].get(key)))
    console.print(table)
    for key, value in update["estimated_impact"].items():
        console.print(f"  [dim]{key}: {value}[/dim]")


@settings_app.command("ai")
def settings_ai(
    salon_id: str = typer.Argument(..., help="Salon id"),
    assignments: list[str] = typer.Option(..., "--set", help="key=value, repeatable"),
) -> None:
    """Update AI provider settings.

    Example:
        claxis settings ai salon-1 --set deepseek_enabled=true --set cost_budget_monthly_euros=150
    """
    result = _execute("update_ai_settings", salon_id, {"new_settings": _parse_assignments(assignments)})
    _print_update(result.payload)


@settings_app.command("window")
def settings_window(
    salon_id: str = typer.Argument(..., help="Salon id"),
    assignments: list[str] = typer.Option(..., "--set", help="key=value, repeatable"),
) -> None:
    """Update service window optimization settings.

    Example:
        claxis settings window salon-1 --set template_cost_euros=0.06
    """
    result = _execute(
        "update_optimization_settings", salon_id, {"new_settings": _parse_assignments(assignments)})
    _print_update(result.payload)


# ═══════════════════════════════════════════════════════════════
# Server
# ═══════════════════════════════════════════════════════════════

@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    port: int = typer.Option(8765, "--port", "-p", help="Port to listen on"),
) -> None:
    """Start the HTTP API.

    Example:
        claxis serve --port 9000
    """
    try:
        import uvicorn
    except ImportError:
        console.print("[red]uvicorn is not installed. Install with: pip install claxis[web][/red]")
        raise typer.Exit(1)

    from claxis.web import create_app

    console.print(Panel(
        f"[bold cyan]Claxis[/bold cyan] decision API v{__version__}\n"
        f"Listening on http://{host}:{port}/api",
        border_style="cyan",
    ))
    uvicorn.run(create_app(), host=host, port=port, log_level="warning")


@app.command()
def version() -> None:
    """Show version."""
    console.print(f"Claxis v{__version__}")


if __name__ == "__main__":
    app()
