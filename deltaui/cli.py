"""
Command-line interface for deltaui.
"""

import importlib.util
import json
import sys
from pathlib import Path

import typer

from deltaui.app import App
from deltaui.codec import dumps
from deltaui.component import registered_components
from deltaui.config import load_config
from deltaui.diff import diff as diff_trees
from deltaui.diff import optimize_patches, patch_stats
from deltaui.errors import ConfigError
from deltaui.parser import parse
from deltaui.signing import StateSigner

cli = typer.Typer(
    name="deltaui",
    help="deltaui - server-rendered components updated with minimal patches",
    no_args_is_help=True,
)


def load_app_from_file(file_path: str | Path) -> App:
    """Import a Python file defining components, and its `app` if it has one."""
    file_path = Path(file_path)

    if not file_path.exists():
        typer.echo(f"❌ File not found: {file_path}")
        raise typer.Exit(1)

    if not file_path.suffix == ".py":
        typer.echo(f"❌ File must be a Python file (.py): {file_path}")
        raise typer.Exit(1)

    sys.path.insert(0, str(file_path.parent.absolute()))
    try:
        spec = importlib.util.spec_from_file_location("deltaui_app", file_path)
        if spec is None or spec.loader is None:
            typer.echo(f"❌ Could not load module from: {file_path}")
            raise typer.Exit(1)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
    except typer.Exit:
        raise
    except Exception as e:
        typer.echo(f"❌ Error loading {file_path}: {e}")
        raise typer.Exit(1)
    finally:
        if str(file_path.parent.absolute()) in sys.path:
            sys.path.remove(str(file_path.parent.absolute()))

    app = getattr(module, "app", None)
    if isinstance(app, App):
        return app
    try:
        return App()
    except ConfigError as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(1)


@cli.command("diff")
def diff(
    old: Path = typer.Argument(..., help="HTML file with the old markup"),
    new: Path = typer.Argument(..., help="HTML file with the new markup"),
    minify: bool = typer.Option(
        True, "--minify/--verbose", help="Compact or verbose wire shape"
    ),
    optimize: bool = typer.Option(True, "--optimize/--no-optimize"),
    stats: bool = typer.Option(False, "--stats", help="Print patch statistics"),
):
    """Print the patches that turn OLD into NEW."""
    for path in (old, new):
        if not path.exists():
            typer.echo(f"❌ File not found: {path}")
            raise typer.Exit(1)

    patches = diff_trees(
        parse(old.read_text(encoding="utf-8")), parse(new.read_text(encoding="utf-8"))
    )
    if optimize:
        patches = optimize_patches(patches)
    typer.echo(dumps(patches, minify=minify, indent=None if minify else 2))
    if stats:
        typer.echo(json.dumps(patch_stats(patches)), err=True)


@cli.command("sign")
def sign(
    state: str = typer.Argument(..., help="Component state as a JSON object"),
    component_id: str = typer.Option(..., "--id", help="Component id"),
):
    """Print the signature of a component state with the configured key."""
    try:
        data = json.loads(state)
    except json.JSONDecodeError as e:
        typer.echo(f"❌ Invalid JSON: {e}")
        raise typer.Exit(1)
    if not isinstance(data, dict):
        typer.echo("❌ State must be a JSON object")
        raise typer.Exit(1)
    try:
        signer = StateSigner(load_config().get("signing_key", ""))
    except ConfigError as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(1)
    typer.echo(signer.sign(data, component_id))


@cli.command("serve")
def serve(
    app_file: str = typer.Argument(..., help="Python file defining components"),
    host: str = typer.Option("localhost", "--host", help="Address to bind to"),
    port: int = typer.Option(8000, "--port", help="Port to bind to"),
    log_level: str = typer.Option("info", "--log-level"),
):
    """Serve the components defined in a Python file."""
    typer.echo(f"📁 Loading components from: {app_file}")
    app = load_app_from_file(app_file)
    components = sorted(registered_components())
    typer.echo(f"📋 Found {len(components)} components")
    for name in components:
        typer.echo(f"   - {name}")

    typer.echo(f"🚀 Starting deltaui server on {host}:{port}{app.route_prefix}")
    app.run(host=host, port=port, log_level=log_level)


def main():
    """Main CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
