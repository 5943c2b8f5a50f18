"""
CLI entry point for the IDL code generator.

Usage:
    idlcodegen generate idl/raydium_amm.json -o generated
    idlcodegen generate idl/pump.json --module pump_interface --override-file fixes.json
    idlcodegen inspect idl/pump.json
    idlcodegen check-overrides idl/pump.json
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import CodegenConfig, load_config
from .exceptions import CodegenAssemblyError, IdlCodegenError
from .log import setup_logging
from .overrides import format_value

console = Console()


def _load_schema(idl_path: str):
    from .schema import parse_file

    return parse_file(idl_path)


def _print_error(e: Exception) -> None:
    if isinstance(e, CodegenAssemblyError):
        console.print(f"[red]Internal error: {e}[/red]")
        console.print("[dim]This is a bug in idlcodegen, not in your IDL.[/dim]")
    else:
        console.print(f"[red]Error: {e}[/red]")


def _applied_table(applied) -> Table:
    table = Table(title="Applied Overrides")
    table.add_column("Kind", style="cyan")
    table.add_column("Entity")
    table.add_column("Original", style="dim")
    table.add_column("New", style="green")
    for record in applied:
        table.add_row(
            record.kind.value,
            record.entity_name or "-",
            format_value(record.original_value),
            format_value(record.new_value),
        )
    return table


def layout_rows(schema) -> List[Tuple[str, str, str, str, str]]:
    """One row per zero-copy type: name, size, align, padding, field offsets."""
    from .codegen.emitter import hoisted_payloads
    from .codegen.layout import layout_report
    from .schema import SerializationStrategy

    rows = []
    for typedef in list(schema.types) + hoisted_payloads(schema):
        if typedef.serialization != SerializationStrategy.FIXED_LAYOUT:
            continue
        report = layout_report(typedef, schema)
        if report is None:
            continue
        offsets = ", ".join(f"{name}@{offset}" for name, offset in report["offsets"].items())
        rows.append(
            (typedef.name, str(report["size"]), str(report["align"]), str(report["padding"]), offsets)
        )
    return rows


def _config_from_args(args: argparse.Namespace) -> CodegenConfig:
    return load_config(
        output_dir=Path(args.output) if getattr(args, "output", None) else None,
        module=getattr(args, "module", None),
        override_root=Path(args.override_root) if getattr(args, "override_root", None) else None,
        log_level="DEBUG" if args.verbose else None,
    )


def run_generate(args: argparse.Namespace) -> int:
    """Generate Python bindings from an IDL file."""
    config = _config_from_args(args)
    setup_logging(config.log_level)

    from .codegen import emit_package
    from .output import module_name_for, write_package
    from .overrides import resolve_overrides

    try:
        schema = _load_schema(args.idl)
        schema, applied = resolve_overrides(schema, args.override_file, config.override_root)
        package = emit_package(schema)
    except (IdlCodegenError, OSError) as e:
        _print_error(e)
        return 1

    module = module_name_for(schema, config.module)

    console.print()
    console.print(Panel(
        f"[bold cyan]{schema.name}[/bold cyan] v{schema.version}\n\n"
        f"[dim]Address: {schema.address or 'Not specified'}[/dim]\n"
        f"[dim]Module: {module}[/dim]",
        title="[bold]IDL Code Generator[/bold]",
    ))
    if applied:
        console.print(_applied_table(applied))

    if args.dry_run:
        table = Table(title="Generated Modules (dry run)")
        table.add_column("Module", style="cyan")
        table.add_column("Declarations", justify="right")
        table.add_column("Lines", justify="right")
        for unit in package.units:
            table.add_row(unit.filename, str(len(unit.body)), str(package.sources[unit.filename].count("\n")))
        console.print(table)
        return 0

    try:
        written = write_package(package, schema, config.output_dir, module)
    except OSError as e:
        _print_error(e)
        return 1

    console.print(f"[green]✓ Wrote {len(written)} files to {config.output_dir / module}[/green]")
    return 0


def run_inspect(args: argparse.Namespace) -> int:
    """Show a summary of an IDL without generating anything."""
    config = _config_from_args(args)
    setup_logging(config.log_level)

    from .codegen import build_discriminator_table

    try:
        schema = _load_schema(args.idl)
    except (IdlCodegenError, OSError) as e:
        _print_error(e)
        return 1

    console.print()
    console.print(Panel(schema.summary(), title=f"[bold]{schema.name}[/bold]"))

    discriminators = build_discriminator_table(schema)
    table = Table(title="Instructions")
    table.add_column("Name", style="cyan")
    table.add_column("Accounts", justify="right")
    table.add_column("Args", justify="right")
    table.add_column("Discriminator", style="dim")
    for ix in schema.instructions:
        tag = list(discriminators.instruction(ix.name))
        derived = "" if ix.discriminator is not None else " (derived)"
        table.add_row(ix.name, str(len(ix.accounts)), str(len(ix.args)), f"{tag}{derived}")
    console.print(table)

    if schema.accounts or schema.events:
        table = Table(title="Accounts and Events")
        table.add_column("Name", style="cyan")
        table.add_column("Kind")
        table.add_column("Payload")
        table.add_column("Discriminator", style="dim")
        for kind, decls in (("account", schema.accounts), ("event", schema.events)):
            for decl in decls:
                tag = list(decl.discriminator) if decl.discriminator is not None else "-"
                payload = decl.payload.serialization.value if decl.payload is not None else "missing"
                table.add_row(decl.name, kind, payload, str(tag))
        console.print(table)

    rows = layout_rows(schema)
    if rows:
        table = Table(title="Zero-Copy Layouts")
        table.add_column("Type", style="cyan")
        table.add_column("Size", justify="right")
        table.add_column("Align", justify="right")
        table.add_column("Padding", justify="right")
        table.add_column("Offsets", style="dim")
        for row in rows:
            table.add_row(*row)
        console.print(table)
    return 0


def run_check_overrides(args: argparse.Namespace) -> int:
    """Discover and validate the override file for an IDL without applying it."""
    config = _config_from_args(args)
    setup_logging(config.log_level)

    from .overrides import Conflict, NotFound, discover, load_override_document, validate

    try:
        schema = _load_schema(args.idl)
        result = discover(schema.name, args.override_file, config.override_root)
        if isinstance(result, NotFound):
            console.print(f"[yellow]No override file found for {schema.name}[/yellow]")
            return 0
        if isinstance(result, Conflict):
            table = Table(title="Conflicting Override Files")
            table.add_column("Path", style="cyan")
            table.add_column("Source")
            for path, source in result.candidates:
                table.add_row(str(path), source)
            console.print(table)
            console.print("[red]✗ Remove all but one or pass --override-file explicitly[/red]")
            return 1
        doc = load_override_document(result.path)
        validate(doc, schema)
    except (IdlCodegenError, OSError) as e:
        _print_error(e)
        return 1

    console.print(f"[green]✓ {result.path} ({result.source}) is valid[/green]")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="idlcodegen",
        description="Generate typed Python bindings from Solana program IDLs",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # generate command
    gen_parser = subparsers.add_parser("generate", help="Generate bindings from an IDL file")
    gen_parser.add_argument("idl", type=str, help="Path to IDL JSON file")
    gen_parser.add_argument("--output", "-o", type=str, help="Output directory (default: generated)")
    gen_parser.add_argument("--module", "-m", type=str, help="Package name (default: program name)")
    gen_parser.add_argument("--override-file", type=str, help="Override file to apply")
    gen_parser.add_argument("--override-root", type=str, help="Directory searched for override files")
    gen_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Generate and validate without writing files",
    )

    # inspect command
    inspect_parser = subparsers.add_parser("inspect", help="Summarize an IDL file")
    inspect_parser.add_argument("idl", type=str, help="Path to IDL JSON file")

    # check-overrides command
    check_parser = subparsers.add_parser("check-overrides", help="Validate the override file for an IDL")
    check_parser.add_argument("idl", type=str, help="Path to IDL JSON file")
    check_parser.add_argument("--override-file", type=str, help="Override file to check")
    check_parser.add_argument("--override-root", type=str, help="Directory searched for override files")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command == "generate":
        return run_generate(args)
    elif args.command == "inspect":
        return run_inspect(args)
    elif args.command == "check-overrides":
        return run_check_overrides(args)
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
