"""Click CLI entry point for sdfkit."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click

from sdfkit import __version__
from sdfkit.codegen import generate, install_artifacts, write_artifacts
from sdfkit.errors import SdfkitError
from sdfkit.library import load_library
from sdfkit.manifest import build_manifest
from sdfkit.scene import Scene, load_scene, read_script, save_grid
from sdfkit.script import ScriptEngine
from sdfkit.warning_policy import WarningPolicy


def _build_warning_policy(
    warn_as_error: str | None, suppress_warning: str | None
) -> WarningPolicy | None:
    """Parse CLI warning options into a WarningPolicy, or None if unset."""
    try:
        return WarningPolicy.from_code_lists(warn_as_error, suppress_warning)
    except ValueError as e:
        raise click.ClickException(str(e)) from e


def _load_validated(
    script_file: Path, warn_as_error: str | None, suppress_warning: str | None
) -> Scene:
    policy = _build_warning_policy(warn_as_error, suppress_warning)
    try:
        scene = load_scene(script_file)
        scene.validate(warning_policy=policy)
    except SdfkitError as e:
        raise click.ClickException(str(e)) from e
    return scene


def _format_vec(values) -> str:
    return "(" + ", ".join(f"{v:.6g}" for v in values) + ")"


def warning_options(func):
    """Attach --warn-as-error / --suppress-warning to a command."""
    func = click.option(
        "--suppress-warning",
        "suppress_warning",
        type=str,
        default=None,
        help="Comma-separated W-codes to suppress (e.g. W03).",
    )(func)
    func = click.option(
        "--warn-as-error",
        "warn_as_error",
        type=str,
        default=None,
        help="Comma-separated W-codes to treat as errors (e.g. W01,W02).",
    )(func)
    return func


SCRIPT_ARGUMENT = click.argument(
    "script_file", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)


@click.group()
@click.version_option(version=__version__, prog_name="sdfkit")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """sdfkit: script SDF scenes and compile them to WGSL and numpy."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@SCRIPT_ARGUMENT
def check(script_file: Path) -> None:
    """Check a script for syntax errors without evaluating it."""
    try:
        ScriptEngine().compile(read_script(script_file))
    except SdfkitError as e:
        raise click.ClickException(str(e)) from e
    click.echo("OK")


@main.command()
@SCRIPT_ARGUMENT
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the shader here instead of stdout.",
)
@click.option(
    "--fragment-only",
    is_flag=True,
    default=False,
    help="Emit only the formula library and scene_sdf, without the base template.",
)
@click.option(
    "--emit-manifest",
    "emit_manifest",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write a JSON build manifest to this path (requires --output).",
)
@warning_options
def shader(
    script_file: Path,
    output: Path | None,
    fragment_only: bool = False,
    emit_manifest: Path | None = None,
    warn_as_error: str | None = None,
    suppress_warning: str | None = None,
) -> None:
    """Compile a script to a WGSL shader."""
    if emit_manifest is not None and output is None:
        raise click.ClickException("--emit-manifest requires --output")
    scene = _load_validated(script_file, warn_as_error, suppress_warning)
    try:
        library = load_library()
        text = scene.shader(library=library, fragment_only=fragment_only)
    except SdfkitError as e:
        raise click.ClickException(str(e)) from e

    if output is None:
        click.echo(text, nl=False)
        return

    try:
        output.write_text(text, encoding="utf-8")
    except OSError as e:
        raise click.ClickException(f"Cannot write shader to {output}: {e}") from e
    if emit_manifest is not None:
        manifest = build_manifest(
            input_path=script_file,
            output_path=output,
            library=library,
            tree=scene.tree,
            command_args=sys.argv[1:],
        )
        try:
            emit_manifest.write_text(json.dumps(manifest, indent=2), encoding="utf-8")
        except OSError as e:
            raise click.ClickException(f"Cannot write manifest to {emit_manifest}: {e}") from e
    click.echo(f"Wrote shader: {output}")


@main.command(name="eval")
@SCRIPT_ARGUMENT
@click.option(
    "-p",
    "--point",
    "points",
    type=(float, float, float),
    multiple=True,
    required=True,
    help="Query point X Y Z; repeat for several points.",
)
@warning_options
def eval_command(
    script_file: Path,
    points: tuple[tuple[float, float, float], ...],
    warn_as_error: str | None = None,
    suppress_warning: str | None = None,
) -> None:
    """Print the signed distance at each point."""
    scene = _load_validated(script_file, warn_as_error, suppress_warning)
    try:
        distances = scene.distance(list(points))
    except SdfkitError as e:
        raise click.ClickException(str(e)) from e
    for point, d in zip(points, distances):
        click.echo(f"{_format_vec(point)} {float(d):.6f}")


@main.command()
@SCRIPT_ARGUMENT
@warning_options
def bounds(
    script_file: Path,
    warn_as_error: str | None = None,
    suppress_warning: str | None = None,
) -> None:
    """Print the scene's axis-aligned bounding box."""
    scene = _load_validated(script_file, warn_as_error, suppress_warning)
    try:
        box = scene.bounds()
    except SdfkitError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"min: {_format_vec(box.min)}")
    click.echo(f"max: {_format_vec(box.max)}")
    click.echo(f"size: {_format_vec(box.size)}")


@main.command()
@SCRIPT_ARGUMENT
def tree(script_file: Path) -> None:
    """Print the operation tree."""
    try:
        scene = load_scene(script_file)
    except SdfkitError as e:
        raise click.ClickException(str(e)) from e
    click.echo(scene.describe())


@main.command()
@SCRIPT_ARGUMENT
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    required=True,
    help="Destination .npy file.",
)
@click.option(
    "--resolution",
    type=click.IntRange(min=2),
    default=64,
    show_default=True,
    help="Samples per axis.",
)
@click.option(
    "--padding",
    type=click.FloatRange(min=0.0),
    default=0.1,
    show_default=True,
    help="Padding around the bounding box, as a fraction of its largest side.",
)
@warning_options
def sample(
    script_file: Path,
    output: Path,
    resolution: int = 64,
    padding: float = 0.1,
    warn_as_error: str | None = None,
    suppress_warning: str | None = None,
) -> None:
    """Sample the distance field on a regular grid and save it as .npy."""
    scene = _load_validated(script_file, warn_as_error, suppress_warning)
    try:
        grid, box = scene.sample(resolution, padding)
        save_grid(grid, output)
    except SdfkitError as e:
        raise click.ClickException(str(e)) from e
    click.echo(
        f"Wrote {output}: {resolution}^3 samples over {_format_vec(box.min)} .. {_format_vec(box.max)}"
    )


_FORMULAS_OPTION = click.option(
    "--formulas",
    "formula_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Directory of formula YAML files (defaults to the bundled set).",
)


@main.command()
@_FORMULAS_OPTION
@click.option(
    "--out",
    "out_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for the generated module, WGSL library, tests and docs.",
)
@click.option(
    "--package",
    "update_package",
    is_flag=True,
    default=False,
    help="Replace the native module and WGSL library shipped with sdfkit.",
)
def codegen(formula_dir: Path | None, out_dir: Path | None, update_package: bool) -> None:
    """Generate and verify the formula library from its YAML specifications."""
    if out_dir is None and not update_package:
        raise click.ClickException("Nothing to do: pass --out and/or --package")
    try:
        build = generate(formula_dir)
        written = write_artifacts(build, out_dir) if out_dir is not None else {}
        if update_package:
            written.update(
                {f"packaged {kind}": path for kind, path in install_artifacts(build).items()}
            )
    except SdfkitError as e:
        raise click.ClickException(str(e)) from e
    for kind, path in written.items():
        click.echo(f"{kind}: {path}")


@main.command()
@_FORMULAS_OPTION
def formulas(formula_dir: Path | None) -> None:
    """Print documentation for every formula."""
    try:
        build = generate(formula_dir)
    except SdfkitError as e:
        raise click.ClickException(str(e)) from e
    click.echo(build.render_docs(), nl=False)
