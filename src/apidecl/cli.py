from __future__ import annotations

import asyncio
import importlib
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from apidecl.config import get_settings
from apidecl.observability import setup_logging
from apidecl.reference.document import build_reference
from apidecl.reference.publisher import S3ReferencePublisher
from apidecl.registry.builder import APIBuilder
from apidecl.runtime.options import AWSOptions
from apidecl.runtime.service import api_base_url
from apidecl.store.sqlite_store import ReferenceStore


app = typer.Typer(no_args_is_help=True, add_completion=False)

console = Console()


def load_builder(target: str) -> APIBuilder:
    """Import 'package.module:attribute' and return the APIBuilder it names."""
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise typer.BadParameter(f"target must look like module:attribute, got {target!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise typer.BadParameter(f"cannot import {module_name}: {e}") from e
    builder = getattr(module, attr, None)
    if not isinstance(builder, APIBuilder):
        raise typer.BadParameter(f"{target} is not an APIBuilder")
    return builder


def _store(path: Optional[str]) -> ReferenceStore:
    return ReferenceStore(Path(path).expanduser() if path else get_settings().store_path)


@app.callback()
def main_callback(
    log_level: Optional[str] = typer.Option(None, help="Log level (default from APIDECL_LOG_LEVEL)"),
) -> None:
    settings = get_settings()
    setup_logging(log_level or settings.log_level, settings.log_format)


@app.command()
def entries(
    target: str = typer.Argument(..., help="module:attribute of the APIBuilder"),
    stability: Optional[str] = typer.Option(None, help="Filter by stability level"),
    format: str = typer.Option("table", help="Output format: table|json"),
) -> None:
    builder = load_builder(target)
    rows = [e for e in builder.entries if not stability or e.stability.value == stability]

    if format.lower() == "json":
        payload = [
            {
                "name": e.name,
                "method": e.method.upper(),
                "route": e.route,
                "stability": e.stability.value,
                "scopes": e.scopes,
                "no_publish": e.no_publish,
            }
            for e in rows
        ]
        typer.echo(json.dumps(payload, indent=2))
        return

    console.print(f"[bold]{builder.title}[/bold] ({builder.name}/{builder.version})")
    console.print(f"[bold]Entries:[/bold] {len(rows)}")

    table = Table(show_header=True, header_style="bold")
    table.add_column("NAME", no_wrap=True)
    table.add_column("METHOD", no_wrap=True)
    table.add_column("ROUTE")
    table.add_column("STABILITY", no_wrap=True)
    table.add_column("SCOPES")

    for e in rows:
        name = f"{e.name} [dim](unpublished)[/dim]" if e.no_publish else e.name
        table.add_row(
            name,
            e.method.upper(),
            e.route,
            e.stability.value,
            json.dumps(e.scopes) if e.scopes is not None else "-",
        )

    console.print(table)


@app.command()
def reference(
    target: str = typer.Argument(..., help="module:attribute of the APIBuilder"),
    root_url: Optional[str] = typer.Option(None, help="Root URL used to compute the base URL"),
    out: Optional[str] = typer.Option(None, help="Output path (default: print to stdout)"),
) -> None:
    builder = load_builder(target)
    base_url = api_base_url(root_url, builder.name, builder.version) if root_url else None
    text = build_reference(builder, base_url=base_url).to_json()

    if out:
        out_path = Path(out).expanduser()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text, encoding="utf-8")
        console.print(f"[bold green]Wrote[/bold green] reference to: {out_path}")
    else:
        typer.echo(text)


@app.command()
def publish(
    target: str = typer.Argument(..., help="module:attribute of the APIBuilder"),
    root_url: str = typer.Option(..., help="Root URL of the deployment"),
    s3: bool = typer.Option(False, help="Also upload to the reference bucket"),
    bucket: Optional[str] = typer.Option(None, help="Reference bucket (default from APIDECL_REFERENCE_BUCKET)"),
    store: Optional[str] = typer.Option(None, help="Path of the local reference history DB"),
) -> None:
    builder = load_builder(target)
    ref = build_reference(builder, base_url=api_base_url(root_url, builder.name, builder.version))

    ref_store = _store(store)
    ref_id = ref_store.record(ref)
    console.print(f"[bold]DB:[/bold] {ref_store.db_path}")
    console.print(f"Recorded reference #{ref_id} ({len(ref.entries)} entries)")

    if s3:
        settings = get_settings()
        publisher = S3ReferencePublisher(bucket=bucket or settings.reference_bucket, aws=AWSOptions())
        key = asyncio.run(publisher.publish(ref))
        console.print(f"[bold green]Published[/bold green] s3://{publisher.bucket}/{key}")


@app.command()
def history(
    service: Optional[str] = typer.Option(None, help="Filter by service name"),
    limit: int = typer.Option(20, help="Max rows to print"),
    store: Optional[str] = typer.Option(None, help="Path of the local reference history DB"),
) -> None:
    refs = _store(store).list_references(service_name=service, limit=limit)

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", no_wrap=True)
    table.add_column("SERVICE")
    table.add_column("VERSION", no_wrap=True)
    table.add_column("ENTRIES", no_wrap=True)
    table.add_column("DIGEST", no_wrap=True)
    for r in refs:
        table.add_row(str(r.id), r.service_name, r.api_version, str(r.entry_count), r.digest[:12])

    console.print(table)


@app.command()
def diff(
    old_id: int = typer.Argument(..., help="Older stored reference id"),
    new_id: int = typer.Argument(..., help="Newer stored reference id"),
    store: Optional[str] = typer.Option(None, help="Path of the local reference history DB"),
) -> None:
    try:
        d = _store(store).diff_references(old_id, new_id)
    except KeyError as e:
        raise typer.BadParameter(str(e.args[0])) from e

    for label, colour, sign in (("added", "green", "+"), ("removed", "red", "-"), ("changed", "yellow", "~")):
        for row in d[label]:
            console.print(f"[{colour}]{sign} {row['method'].upper():<6} {row['route']:<35} {row['name']}[/{colour}]")

    total = sum(len(v) for v in d.values())
    if total == 0:
        console.print("No differences.")


@app.command()
def ping() -> None:
    console.print("pong")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
