"""CLI de Vigía: servidor, importación masiva y utilidades.

English:
    Vigía CLI: server, bulk import and utilities.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer
import uvicorn

from .aggregation import completion_counts, district_rollups, island_totals, latest_per_division
from .catalog import CatalogError, ReferenceCatalog, load_catalog
from .client import DEFAULT_BASE_URL, ResultsClient
from .config import VigiaSettings, load_config
from .importer import stage_files
from .logging import setup_logging

app = typer.Typer(help="Vigía election result server.", no_args_is_help=True)


def _settings_or_exit(config_file: Optional[Path], *, check_paths: bool = True) -> VigiaSettings:
    try:
        return load_config(config_file, check_paths=check_paths)
    except ValueError as exc:
        typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2) from exc


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (defaults to VIGIA_HOST)."),
    port: Optional[int] = typer.Option(None, help="Port (defaults to VIGIA_PORT)."),
    config_file: Optional[Path] = typer.Option(None, "--config", help="YAML configuration file."),
) -> None:
    """Arranca el servidor de resultados. / Start the result server."""
    from .api import create_app

    settings = _settings_or_exit(config_file)
    setup_logging(
        settings.LOG_LEVEL,
        settings.STORAGE_PATH,
        rotate_when=settings.LOG_ROTATE_WHEN,
        backup_count=settings.LOG_BACKUP_COUNT,
        console=settings.LOG_CONSOLE,
    )
    try:
        application = create_app(settings)
    except CatalogError as exc:
        typer.secho(f"Catalog error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2) from exc
    uvicorn.run(application, host=host or settings.HOST, port=port or settings.PORT, log_config=None)


@app.command("import")
def import_files(
    files: List[Path] = typer.Argument(..., help="JSON result files."),
    url: str = typer.Option(DEFAULT_BASE_URL, help="Result server base URL."),
    auto_calc: bool = typer.Option(True, "--auto-calc/--no-auto-calc", help="Recompute percentages before sending."),
    strict: bool = typer.Option(False, help="Require complete metadata and at least one party."),
) -> None:
    """Importa archivos JSON y los envía en bloque. / Import JSON files and bulk submit them."""
    staged = stage_files(files, auto_calc=auto_calc, strict=strict)
    with ResultsClient(url) as client:
        report = client.submit_batch(staged.items)
    for item in report.items:
        if item.status == "success":
            typer.echo(f"OK    {item.name} -> {item.record_id}")
        else:
            typer.secho(f"FAIL  {item.name}: {item.error}", fg=typer.colors.RED)
    typer.echo(f"{report.succeeded} succeeded, {report.failed} failed")
    if report.failed:
        raise typer.Exit(code=1)


@app.command("validate-catalog")
def validate_catalog(path: Path = typer.Argument(..., help="Catalog JSON file.")) -> None:
    """Valida un catálogo de distritos. / Validate a district catalog."""
    try:
        catalog = load_catalog(path)
    except CatalogError as exc:
        typer.secho(f"Invalid catalog: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    divisions = sum(len(district.divisions) for district in catalog)
    typer.echo(f"Catalog OK: {len(catalog)} districts, {divisions} divisions")


@app.command()
def summary(url: str = typer.Option(DEFAULT_BASE_URL, help="Result server base URL.")) -> None:
    """Totales de la isla y completitud. / Island totals and completion."""
    with ResultsClient(url) as client:
        records = client.results()
        catalog = ReferenceCatalog.from_payload(client.districts())
    rollups = district_rollups(catalog, latest_per_division(records))
    done, total = completion_counts(rollups)
    typer.echo(f"Districts complete: {done}/{total}")
    for party in island_totals(rollups):
        typer.echo(f"{party.party_code:<10} {party.votes:>10}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
