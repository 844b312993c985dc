"""GuardSmith CLI — mine boundary inputs from JavaScript function guards."""
import json
import logging
from pathlib import Path

import typer

from guardsmith import (
    GuardSmithError, SynthesisContext, analyze_file, scan_path, to_dict,
)

logger = logging.getLogger("guardsmith.cli")

app = typer.Typer(
    name="guardsmith",
    help="\U0001f6e1 GuardSmith — synthesize boundary values from JS guards",
)


def _report(name: str, functions: dict):
    typer.echo(f"\U0001f4c4 {name}: {len(functions)} function(s)")
    for func, fc in functions.items():
        typer.echo(f"  {func or '<anonymous>'}({', '.join(fc.params)})")
        for param, constraints in fc.constraints.items():
            values = ", ".join(c.value for c in constraints) or "-"
            typer.echo(f"     {param} → {values}")


@app.command()
def scan(
    src: Path = typer.Argument(..., help="JavaScript file or directory to scan"),
    as_json: bool = typer.Option(False, "--json", help="JSON output"),
    seed: int = typer.Option(None, "--seed", "-s", help="Random engine seed"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Scan JavaScript functions for guards and print candidate values."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")
    try:
        ctx = SynthesisContext.seeded(seed)
    except GuardSmithError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if src.is_file():
        if src.suffix != ".js":
            typer.echo(f"Error: {src} is not a JavaScript file", err=True)
            raise typer.Exit(1)
        try:
            results = {str(src): analyze_file(src, ctx)}
        except GuardSmithError as e:
            typer.echo(f"Error: {src}: {e}", err=True)
            raise typer.Exit(1)
    elif src.is_dir():
        results = scan_path(src, ctx)
    else:
        typer.echo(f"Error: {src} not found", err=True)
        raise typer.Exit(1)

    logger.debug("analyzed %d file(s)", len(results))
    if as_json:
        data = {name: to_dict(functions) for name, functions in results.items()}
        typer.echo(json.dumps(data, indent=2))
    else:
        for name, functions in results.items():
            _report(name, functions)


if __name__ == "__main__":
    app()
