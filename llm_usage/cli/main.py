"""
CLI interface for LLM Usage Analyzer.

Provides command-line access to scanning, analysis, plan fit, trends and
report history.
"""

import sys
from pathlib import Path
from typing import Optional

import typer
import uvicorn
import yaml
from rich.console import Console
from rich.table import Table

from llm_usage import __version__
from llm_usage.common.errors import DataSourceNotFoundError, ReportFormatError
from llm_usage.common.logging import LogLevel, configure_logging
from llm_usage.config.loader import AnalyzerConfig, default_config, load_config
from llm_usage.core.aggregator import require_data_dir, resolve_window, scan_usage
from llm_usage.core.cost_estimator import estimate_cost
from llm_usage.core.importer import load_report_file
from llm_usage.core.plan_fit import analyze_plan_fit
from llm_usage.core.report import PlanInfo
from llm_usage.core.trends import analyze_usage_trends, model_distribution
from llm_usage.demo.sample_data import seed_demo_history
from llm_usage.server.app import DEFAULT_PORT, create_app
from llm_usage.storage.repository import ReportRepository

app = typer.Typer(help="Analyze Claude Code usage and check whether you're on the right plan.")
history_app = typer.Typer(help="Manage saved usage reports.")
app.add_typer(history_app, name="history")
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

DEFAULT_REPORT_FILE = "usage_report.json"
DEFAULT_PLAN_NAME = "Claude Pro"
DEFAULT_PLAN_PRICE = 20.0


def _config(ctx: typer.Context) -> AnalyzerConfig:
    return ctx.obj if isinstance(ctx.obj, AnalyzerConfig) else default_config()


def _repository(config: AnalyzerConfig) -> ReportRepository:
    return ReportRepository(config.history_db)


def format_tokens(count: int) -> str:
    """Compact token count: 1.23M, 45.6K, 789."""
    if count >= 1_000_000:
        return f"{count / 1_000_000:.2f}M"
    if count >= 1_000:
        return f"{count / 1_000:.1f}K"
    return str(count)


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.2f}"


def _short_model(model: str) -> str:
    return model.replace("claude-", "").replace("gpt-", "")


def _load_report_or_exit(file: str):
    try:
        return load_report_file(file)
    except ReportFormatError as e:
        console.print(f"\n[red]Invalid report:[/] {e.message}")
        console.print("[dim]Run `llm-usage scan` first to generate a report.[/]\n")
        sys.exit(EXIT_CODE_FAIL)


def _require_data_dir_or_exit(root: Path) -> Path:
    try:
        return require_data_dir(root)
    except DataSourceNotFoundError as e:
        console.print("\n[red]Claude Code data not found.[/]")
        console.print(f"[dim]Expected location: {e.path}[/]\n")
        sys.exit(EXIT_CODE_FAIL)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML file overriding pricing, plans and paths"
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="DEBUG, INFO, WARNING or ERROR"
    ),
):
    """LLM Usage Analyzer CLI."""
    try:
        config = load_config(config_path) if config_path else default_config()
        level = LogLevel(log_level.upper()) if log_level else config.logging.level
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        # ConfigError and bad --log-level values are both ValueErrors
        console.print(f"[red]Configuration error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    configure_logging(level, config.logging.format)
    ctx.obj = config

    if ctx.invoked_subcommand is None:
        console.print(f"LLM Usage Analyzer v{__version__} - Use --help to see available commands")


@app.command()
def scan(
    ctx: typer.Context,
    days: Optional[int] = typer.Option(None, "--days", "-d", help="Only include data from the last N days"),
    start_date: Optional[str] = typer.Option(None, "--start-date", help="Start date (YYYY-MM-DD)"),
    end_date: Optional[str] = typer.Option(None, "--end-date", help="End date (YYYY-MM-DD)"),
    output: str = typer.Option(DEFAULT_REPORT_FILE, "--output", "-o", help="Output file path"),
    json_output: bool = typer.Option(False, "--json", help="Print raw JSON to stdout (for piping)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show non-fatal scan errors"),
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", help="Claude Code projects directory"),
    workers: int = typer.Option(1, "--workers", "-w", min=1, help="Sessions to read in parallel"),
    save: bool = typer.Option(False, "--save", help="Also save the report to history"),
):
    """Scan Claude Code local data and write a usage report."""
    config = _config(ctx)
    root = data_dir or config.data_dir

    try:
        start, end = resolve_window(days=days, start_date=start_date, end_date=end_date)
    except ValueError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    root = _require_data_dir_or_exit(root)

    plan = PlanInfo(name=DEFAULT_PLAN_NAME, price_usd=DEFAULT_PLAN_PRICE, type="subscription")
    result = scan_usage(root, start, end, plan=plan, max_workers=workers)
    report = result.report

    if json_output:
        typer.echo(report.to_json())
        return

    console.print("\n[bold cyan]LLM Usage Analyzer - Local Agent[/]")
    console.print(f"[dim]Scanned: {root}[/]")

    if result.errors and verbose:
        console.print("\n[yellow]Some errors occurred:[/]")
        for error in result.errors[:5]:
            console.print(f"[dim]  {error}[/]")
        if len(result.errors) > 5:
            console.print(f"[dim]  ...and {len(result.errors) - 5} more[/]")

    if report.message_count == 0:
        console.print("\n[yellow]No usage data found.[/]")
        console.print("[dim]Claude Code may not have been used yet, or the date range holds no data.[/]\n")
        return

    _display_scan_summary(report)

    output_path = Path(output).resolve()
    output_path.write_text(report.to_json(), encoding="utf-8")
    console.print(f"\n[green]Report saved:[/] {output_path}")

    if save:
        stored = _repository(config).save_report(report)
        console.print(f"[green]Saved to history:[/] {stored.name} ({stored.id})")
    console.print()


def _display_scan_summary(report) -> None:
    console.print("\n[bold]Usage Summary[/bold]")
    console.print("-" * 40)
    console.print(f"Sessions:      {report.session_count}")
    console.print(f"Messages:      {report.message_count}")
    console.print(f"Input tokens:  {format_tokens(report.input_tokens)}")
    console.print(f"Output tokens: {format_tokens(report.output_tokens)}")
    console.print(f"Total tokens:  {format_tokens(report.total_tokens)}")
    if report.cached_tokens:
        console.print(f"Cached tokens: {format_tokens(report.cached_tokens)}")

    table = Table(title="By Model")
    table.add_column("Model")
    table.add_column("Tokens", justify="right")
    table.add_column("Share", justify="right")
    for model, tokens in sorted(report.by_model, key=lambda item: item[1].total, reverse=True):
        share = tokens.total / report.total_tokens * 100 if report.total_tokens else 0.0
        table.add_row(_short_model(model), format_tokens(tokens.total), f"{share:.1f}%")
    console.print(table)

    console.print(f"Period: {report.period.start[:10]} to {report.period.end[:10]}")


@app.command()
def analyze(
    ctx: typer.Context,
    file: str = typer.Argument(DEFAULT_REPORT_FILE, help="Usage report JSON file"),
    plan: Optional[str] = typer.Option(None, "--plan", "-p", help="Your current plan name"),
    price: Optional[float] = typer.Option(None, "--price", min=0, help="Your plan price in USD"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show per-model cost breakdown"),
):
    """Compare a report's subscription price with pay-as-you-go API cost."""
    config = _config(ctx)
    report = _load_report_or_exit(file)

    plan_name = plan or report.plan.name or DEFAULT_PLAN_NAME
    if price is None:
        known = config.get_plan(plan_name) if plan else None
        price = known.price_per_month if known else report.plan.price_usd
    estimate = estimate_cost(report, config.pricing, subscription_price=price)

    console.print("\n[bold]LLM Usage Analysis[/bold]")
    console.print("-" * 40)
    console.print(f"Input tokens:    {format_tokens(report.input_tokens)}")
    console.print(f"Output tokens:   {format_tokens(report.output_tokens)}")
    console.print(f"Your plan:       {plan_name} ({_format_currency(estimate.subscription_price)}/mo)")
    console.print(f"API equivalent:  {_format_currency(estimate.api_equivalent_cost)}")

    if estimate.is_overpaying:
        console.print(
            f"\n[yellow]You're paying {_format_currency(estimate.savings)} more than the API would cost[/]"
        )
    else:
        console.print(f"\n[green]Good value: saving {_format_currency(estimate.savings)} vs the API[/]")
    console.print(f"[bold]Recommendation:[/bold] {estimate.recommended_plan_label}")

    if verbose:
        table = Table(title="Model Breakdown")
        table.add_column("Model")
        table.add_column("Tokens", justify="right")
        table.add_column("Cost", justify="right")
        for row in estimate.model_breakdown:
            table.add_row(_short_model(row.model), format_tokens(row.tokens), _format_currency(row.cost))
        console.print(table)

    console.print(f"\n[dim]Period: {report.period.start[:10]} to {report.period.end[:10]}[/]")
    console.print(f"[dim]Messages: {report.message_count} | Sessions: {report.session_count}[/]\n")


@app.command("plan-fit")
def plan_fit(
    ctx: typer.Context,
    file: str = typer.Argument(DEFAULT_REPORT_FILE, help="Usage report JSON file"),
    plan: Optional[str] = typer.Option(None, "--plan", "-p", help="Your current plan tier"),
):
    """Check daily message counts against the subscription tiers."""
    config = _config(ctx)
    report = _load_report_or_exit(file)

    current = config.get_plan(plan or report.plan.name)
    if current is None:
        if plan:
            names = ", ".join(p.name for p in config.plans)
            console.print(f"[red]Unknown plan '{plan}'.[/] Expected one of: {names}")
            sys.exit(EXIT_CODE_FAIL)
        current = config.plans[-1]

    result = analyze_plan_fit(report.by_day, current.name, config.plans, config.plan_fit)

    console.print("\n[bold]Plan Fit[/bold]")
    console.print("-" * 40)
    console.print(f"Current plan:   {result.current_plan}")
    console.print(f"Recommendation: [bold]{result.recommendation}[/] ({_format_currency(result.recommended_price)}/mo)")
    console.print(f"Reason:         {result.recommendation_reason}")
    console.print(f"Data:           {result.total_days} days, {result.confidence.value} confidence")
    if result.peak_day:
        console.print(f"Peak day:       {result.peak_day.date} ({result.peak_day.count} messages)")
    for name, count in result.days_over.items():
        console.print(f"Days over {name}: {count}")
    if result.savings > 0:
        console.print(
            f"\n[green]Save {_format_currency(result.savings)}/month "
            f"({_format_currency(result.savings * 12)}/year)[/]"
        )
    console.print()


@app.command()
def trends(ctx: typer.Context):
    """Show month-over-month usage trends from saved reports."""
    config = _config(ctx)
    reports = _repository(config).list_reports()
    trend = analyze_usage_trends(reports, config.pricing)

    if trend is None:
        console.print("\n[yellow]No saved reports yet.[/] Run `llm-usage scan --save` to build history.\n")
        return

    table = Table(title="Monthly Usage")
    table.add_column("Month")
    table.add_column("Tokens", justify="right")
    table.add_column("Messages", justify="right")
    table.add_column("Sessions", justify="right")
    table.add_column("API Cost", justify="right")
    for month in trend.data:
        table.add_row(
            month.period,
            format_tokens(month.total_tokens),
            str(month.message_count),
            str(month.session_count),
            _format_currency(month.total_cost),
        )
    console.print(table)

    sign = "+" if trend.percent_change >= 0 else "-"
    console.print(f"Change vs previous month: {sign}{abs(trend.percent_change):.1f}%")
    console.print(f"Average daily cost:       {_format_currency(trend.avg_daily_cost)}")
    console.print(f"Projected monthly cost:   {_format_currency(trend.projected_monthly_cost)}")

    top = model_distribution(reports, config.pricing)[:5]
    if top:
        console.print("\n[bold]Top models[/bold]")
        for share in top:
            console.print(f"  {_short_model(share.model)}: {share.percentage:.1f}% ({_format_currency(share.cost)})")
    console.print()


@history_app.command("list")
def history_list(ctx: typer.Context):
    """List saved reports, newest first."""
    reports = _repository(_config(ctx)).list_reports()
    if not reports:
        console.print("[dim]No saved reports.[/]")
        return
    table = Table(title="Saved Reports")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Period")
    table.add_column("Messages", justify="right")
    for stored in reports:
        period = f"{stored.report.period.start[:10]} - {stored.report.period.end[:10]}"
        table.add_row(stored.id, stored.name or "", period, str(stored.report.message_count))
    console.print(table)


@history_app.command("show")
def history_show(ctx: typer.Context, report_id: str = typer.Argument(..., help="Report id")):
    """Print a saved report as JSON."""
    stored = _repository(_config(ctx)).get_report(report_id)
    if stored is None:
        console.print(f"[red]No report with id {report_id}[/]")
        sys.exit(EXIT_CODE_FAIL)
    typer.echo(stored.report.to_json())


@history_app.command("delete")
def history_delete(ctx: typer.Context, report_id: str = typer.Argument(..., help="Report id")):
    """Delete a saved report."""
    if not _repository(_config(ctx)).delete_report(report_id):
        console.print(f"[red]No report with id {report_id}[/]")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]Deleted[/] {report_id}")


@history_app.command("rename")
def history_rename(
    ctx: typer.Context,
    report_id: str = typer.Argument(..., help="Report id"),
    name: str = typer.Argument(..., help="New display name"),
):
    """Rename a saved report."""
    if not _repository(_config(ctx)).rename_report(report_id, name):
        console.print(f"[red]No report with id {report_id}[/]")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]Renamed[/] {report_id} to {name}")


@history_app.command("clear")
def history_clear(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete all saved reports."""
    if not yes and not typer.confirm("Delete all saved reports?"):
        return
    _repository(_config(ctx)).clear_history()
    console.print("[green]History cleared[/]")


@history_app.command("export")
def history_export(
    ctx: typer.Context,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Backup file (default: stdout)"),
):
    """Export all saved reports as a JSON backup."""
    backup = _repository(_config(ctx)).export_all()
    if output is None:
        typer.echo(backup)
        return
    output.write_text(backup, encoding="utf-8")
    console.print(f"[green]Exported to[/] {output}")


@history_app.command("import")
def history_import(ctx: typer.Context, file: Path = typer.Argument(..., help="Backup file to import")):
    """Merge a JSON backup into history."""
    try:
        content = file.read_text(encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Error reading backup:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)
    result = _repository(_config(ctx)).import_all(content)
    if not result.success:
        console.print(f"[red]Import failed:[/] {result.error}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]Imported {result.imported} report(s)[/]")


@app.command()
def demo(ctx: typer.Context):
    """Save a sample report to history for trying out `trends` and `history`."""
    saved = seed_demo_history(_repository(_config(ctx)))
    if not saved:
        console.print("[dim]Demo report already in history.[/]")
        return
    console.print(f"[green]Saved demo report[/] {saved[0].id}")


@app.command()
def serve(
    ctx: typer.Context,
    port: int = typer.Option(DEFAULT_PORT, "--port", "-p", help="Port to listen on"),
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    days: Optional[int] = typer.Option(None, "--days", "-d", min=1, help="Only include data from the last N days"),
):
    """Start a local server that serves usage data to the web dashboard."""
    config = _config(ctx)
    _require_data_dir_or_exit(config.data_dir)

    console.print(f"\n[cyan]LLM Usage Analyzer - Local Server[/] at http://{host}:{port}")
    console.print("[dim]  GET /api/health  - Connection check[/]")
    console.print("[dim]  GET /api/usage   - Full usage report (re-scans on each request)[/]\n")
    uvicorn.run(create_app(config, default_days=days), host=host, port=port, log_level="warning")


if __name__ == "__main__":
    app()
