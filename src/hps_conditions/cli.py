"""
hps-conditions Command Line Interface (CLI)

Command-line utilities for the conditions database: loading calibration sets from
text files, registering their validity records, inspecting configured tables and
records, and printing the conditions that apply to a run.
"""

import json
import os
from pathlib import Path
from typing import Any, List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from hps_conditions.core.manager import DatabaseConditionsManager
from hps_conditions.core.resources import ResourceReader
from hps_conditions.errors import ConditionsError
from hps_conditions.models.record import ConditionsRecord, ConditionsRecordCollection
from hps_conditions.settings import ConditionsSettings
from hps_conditions.tools.loader import load_text_file

app = typer.Typer(rich_markup_mode="markdown", help="HPS conditions database tool.")
console = Console()

DEFAULT_DETECTOR = "HPS-conditions-cli"


def output_json(data: Any) -> None:
    """Helper to output data as JSON."""
    print(json.dumps(data, default=str, indent=2))


def _fail(message: Any) -> None:
    console.print(f"[red]{escape(str(message))}[/red]")
    raise typer.Exit(1)


def find_properties_path(explicit_path: Optional[str] = None) -> Optional[str]:
    """Find the connection properties file, checking common locations."""
    if explicit_path:
        return explicit_path

    if env_path := os.getenv("HPS_CONDITIONS_PROPERTIES"):
        return env_path

    for candidate in (Path("conditions.properties"), Path(".hps") / "conditions.properties"):
        if candidate.exists():
            return str(candidate)
    return None


def get_manager(
    properties: Optional[str] = None,
    config: Optional[str] = None,
    require_connection: bool = True,
) -> DatabaseConditionsManager:
    """Creates and configures a DatabaseConditionsManager."""
    settings = ConditionsSettings.from_env()
    manager = DatabaseConditionsManager(
        resource_reader=ResourceReader(settings.detector_paths)
    )
    try:
        config_path = config or settings.config_path
        if config_path:
            manager.configure(config_path)
        else:
            manager.configure_from_resource()
        properties_path = find_properties_path(properties)
        if properties_path:
            manager.set_connection_properties(properties_path)
        elif require_connection:
            console.print("[red]No connection properties found.[/red]")
            console.print(
                "[yellow]Hint: Use --properties to specify a file or set "
                "HPS_CONDITIONS_PROPERTIES[/yellow]"
            )
            raise typer.Exit(1)
    except ConditionsError as e:
        _fail(e)
    return manager


PROPERTIES_HELP = "Connection properties file."
CONFIG_HELP = "XML conditions configuration (defaults to the embedded one)."


@app.command()
def load(
    table: str = typer.Option(
        ..., "--table", "-t", help="Name of the target table in the database."
    ),
    file: str = typer.Option(..., "--file", "-f", help="Input data file."),
    collection_id: Optional[int] = typer.Option(
        None, "--collection-id", "-c", help="Collection ID; must not exist yet."
    ),
    description: Optional[str] = typer.Option(
        None, "--description", "-d", help="Description of the collection data."
    ),
    run_start: Optional[int] = typer.Option(
        None, "--run-start", "-s", help="Also add a validity record starting at this run."
    ),
    run_end: Optional[int] = typer.Option(
        None, "--run-end", "-e", help="Last run of the validity record."
    ),
    name: Optional[str] = typer.Option(
        None, "--name", "-n", help="Name of the validity record (default: table)."
    ),
    tag: Optional[str] = typer.Option(None, "--tag", help="Tag of the validity record."),
    properties: Optional[str] = typer.Option(None, "--properties", "-p", help=PROPERTIES_HELP),
    config: Optional[str] = typer.Option(None, "--config", help=CONFIG_HELP),
) -> None:
    """Load a set of conditions into the database from a text file."""
    if not Path(file).exists():
        _fail(f"Input file does not exist: {file}")
    if run_end is not None and run_start is None:
        _fail("--run-end requires --run-start")

    manager = get_manager(properties, config)
    try:
        result = load_text_file(
            manager,
            table,
            file,
            collection_id=collection_id,
            description=description,
            run_start=run_start,
            run_end=run_end,
            record_name=name,
            tag=tag,
        )
    except (ConditionsError, ValueError) as e:
        _fail(e)

    console.print(
        f"[green]✓ Inserted {result.rows} rows into [bold]{result.table_name}[/bold] "
        f"with collection_id {result.collection_id}[/green]"
    )
    if result.record is not None:
        console.print(f"  validity record: {result.record}")


@app.command()
def add(
    name: str = typer.Option(..., "--name", "-n", help="Conditions key name."),
    table: str = typer.Option(..., "--table", "-t", help="Table holding the collection."),
    collection_id: int = typer.Option(..., "--collection-id", "-c", help="Collection ID."),
    run_start: int = typer.Option(..., "--run-start", "-s", help="First valid run."),
    run_end: Optional[int] = typer.Option(
        None, "--run-end", "-e", help="Last valid run (open-ended if omitted)."
    ),
    tag: Optional[str] = typer.Option(None, "--tag", help="Tag for the record."),
    notes: Optional[str] = typer.Option(None, "--notes", help="Free-text description."),
    created_by: Optional[str] = typer.Option(None, "--user", "-u", help="Record author."),
    properties: Optional[str] = typer.Option(None, "--properties", "-p", help=PROPERTIES_HELP),
    config: Optional[str] = typer.Option(None, "--config", help=CONFIG_HELP),
) -> None:
    """Add a conditions validity record for an existing collection."""
    manager = get_manager(properties, config)
    opened = False
    try:
        opened = manager.open_connection()
        if not manager.collection_id_exists(table, collection_id):
            _fail(f"No collection {collection_id} exists in table {table}")
        record = manager.add_conditions_record(
            ConditionsRecord(
                name=name,
                table_name=table,
                collection_id=collection_id,
                run_start=run_start,
                run_end=run_end,
                tag=tag,
                notes=notes,
                created_by=created_by,
            )
        )
    except ConditionsError as e:
        _fail(e)
    finally:
        manager.close_connection(opened)
    console.print(f"[green]✓ Added conditions record[/green] {record}")


@app.command()
def tables(
    config: Optional[str] = typer.Option(None, "--config", help=CONFIG_HELP),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """List the configured conditions tables."""
    manager = get_manager(config=config, require_connection=False)
    rows = [
        {
            "table": meta.table_name,
            "key": meta.key,
            "object": meta.object_type.__name__,
            "collection": meta.collection_type.__name__,
            "fields": list(meta.fields),
        }
        for meta in manager.table_metadata
    ]
    if json_output:
        output_json(rows)
        return

    table = Table(title="Conditions Tables")
    table.add_column("Table", style="cyan")
    table.add_column("Key", style="dim")
    table.add_column("Object", style="green")
    table.add_column("Collection", style="green")
    table.add_column("Fields", style="yellow")
    for row in rows:
        table.add_row(
            row["table"], row["key"], row["object"], row["collection"], ", ".join(row["fields"])
        )
    console.print(table)
    console.print(f"Validity records are read from [bold]{manager.conditions_table_name}[/bold]")


@app.command()
def records(
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Filter by key name."),
    run: Optional[int] = typer.Option(None, "--run", "-r", help="Only records valid for this run."),
    properties: Optional[str] = typer.Option(None, "--properties", "-p", help=PROPERTIES_HELP),
    config: Optional[str] = typer.Option(None, "--config", help=CONFIG_HELP),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """List conditions validity records."""
    manager = get_manager(properties, config)
    try:
        manager.set_detector_and_run(DEFAULT_DETECTOR, run if run is not None else 0)
        if name:
            found = manager.find_conditions_records(name)
        else:
            found = manager.get_conditions(
                ConditionsRecordCollection, manager.conditions_table_name
            )
        if run is not None:
            found = found.find_by_run(run)
    except ConditionsError as e:
        _fail(e)
    finally:
        manager.close()

    if json_output:
        output_json([record.model_dump() for record in found])
        return
    _render_records(found)


def _render_records(found: List[ConditionsRecord]) -> None:
    table = Table(title="Conditions Records")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Table")
    table.add_column("Collection", style="magenta")
    table.add_column("Runs", style="yellow")
    table.add_column("Tag")
    table.add_column("Created", style="dim")
    table.add_column("Notes", style="dim")
    for record in found:
        run_end = "" if record.run_end is None else str(record.run_end)
        table.add_row(
            str(record.id),
            record.name,
            record.table_name,
            str(record.collection_id),
            f"{record.run_start}-{run_end}",
            record.tag or "",
            record.created.strftime("%Y-%m-%d %H:%M") if record.created else "",
            record.notes or "",
        )
    console.print(table)


@app.command("next-id")
def next_id(
    table: str = typer.Argument(..., help="Conditions table name."),
    properties: Optional[str] = typer.Option(None, "--properties", "-p", help=PROPERTIES_HELP),
    config: Optional[str] = typer.Option(None, "--config", help=CONFIG_HELP),
) -> None:
    """Print the next free collection ID of a table."""
    manager = get_manager(properties, config)
    opened = False
    try:
        opened = manager.open_connection()
        collection_id = manager.next_collection_id(table)
    except ConditionsError as e:
        _fail(e)
    finally:
        manager.close_connection(opened)
    print(collection_id)


@app.command()
def init(
    properties: Optional[str] = typer.Option(None, "--properties", "-p", help=PROPERTIES_HELP),
    config: Optional[str] = typer.Option(None, "--config", help=CONFIG_HELP),
) -> None:
    """Create every configured conditions table that does not exist yet."""
    manager = get_manager(properties, config)
    opened = False
    try:
        opened = manager.open_connection()
        created = manager.schema.create_tables(manager.connection.connection)
    except ConditionsError as e:
        _fail(e)
    finally:
        manager.close_connection(opened)
    console.print(
        Panel("\n".join(created), title="Conditions tables ready", expand=False)
    )


@app.command()
def show(
    name: str = typer.Argument(..., help="Conditions key name, e.g. ecal_gains."),
    run: int = typer.Option(..., "--run", "-r", help="Run number."),
    detector: Optional[str] = typer.Option(None, "--detector", "-d", help="Detector name."),
    properties: Optional[str] = typer.Option(None, "--properties", "-p", help=PROPERTIES_HELP),
    config: Optional[str] = typer.Option(None, "--config", help=CONFIG_HELP),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Show the conditions named NAME that apply to a run."""
    manager = get_manager(properties, config)
    try:
        manager.set_detector_and_run(detector or DEFAULT_DETECTOR, run)
        valid = manager.find_conditions_records(name).find_by_run(run)
        if len(valid) == 0:
            _fail(f"No conditions record for '{name}' is valid for run {run}")
        meta = manager.schema.find_by_table_name(valid[-1].table_name)
        if meta is None:
            _fail(f"Unknown table {valid[-1].table_name}")
        collection = manager.get_conditions(meta.collection_type, name)
    except ConditionsError as e:
        _fail(e)
    finally:
        manager.close()

    frame = collection.to_dataframe()
    if json_output:
        output_json(frame.to_dict(orient="records"))
        return

    table = Table(
        title=f"{name} for run [cyan]{run}[/cyan] "
        f"(table {meta.table_name}, collection {collection.collection_id})"
    )
    for column in frame.columns:
        table.add_column(str(column))
    for values in frame.itertuples(index=False, name=None):
        table.add_row(*(str(v) for v in values))
    console.print(table)


if __name__ == "__main__":
    app()
