"""``tablero env`` subcommands: audit and template the environment."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console
from rich.table import Table

from tablero.config.audit import AuditReport, audit_environment, render_env_template


def register_subcommands(subparsers):
    check_parser = subparsers.add_parser("check", help="Validate environment variables")
    check_parser.add_argument("--profile", choices=("dev", "prod"), default="dev")
    check_parser.add_argument("--json", action="store_true", help="Print the report as JSON")

    template_parser = subparsers.add_parser("template", help="Write a commented env file")
    template_parser.add_argument("--profile", choices=("dev", "prod"), default="dev")
    template_parser.add_argument("--output", help="File to write (default: stdout)")
    template_parser.add_argument("--force", action="store_true", help="Overwrite an existing file")


def _render_report(report: AuditReport, console: Console | None = None) -> None:
    console = console or Console()
    table = Table(title=f"Environment ({report.profile})", show_lines=False)
    table.add_column("Variable", style="bold cyan")
    table.add_column("Group", style="magenta")
    table.add_column("Value")
    table.add_column("Status")

    for item in report.vars:
        value = item.redacted_value()
        shown = value if value is not None else f"[dim]{item.default or '-'}[/dim]"
        if item.errors:
            state = "[red]" + "; ".join(item.errors) + "[/red]"
        elif item.warnings:
            state = "[yellow]" + "; ".join(item.warnings) + "[/yellow]"
        else:
            state = "[green]ok[/green]"
        table.add_row(item.key, item.group, shown, state)

    console.print(table)
    console.print(f"{report.errors} error(s), {report.warnings} warning(s)")


def dispatch(args) -> int:
    if args.subcommand == "check":
        report = audit_environment(profile=args.profile)
        if args.json:
            print(report.to_json())
        else:
            _render_report(report)
        return 0 if report.ok else 1

    if args.subcommand == "template":
        text = render_env_template(profile=args.profile)
        if not args.output:
            print(text, end="")
            return 0
        path = Path(args.output).expanduser()
        if path.exists() and not args.force:
            raise SystemExit(f"{path} already exists (use --force to overwrite)")
        path.write_text(text, encoding="utf-8")
        print(f"wrote {path}")
        return 0

    raise ValueError(f"No handler for env subcommand: {args.subcommand}")
