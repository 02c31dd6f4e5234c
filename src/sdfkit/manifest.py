"""Build manifest for generated shaders."""

from __future__ import annotations

import hashlib
import platform
import subprocess
from datetime import datetime, timezone
from pathlib import Path

from sdfkit import __version__
from sdfkit.library import FormulaLibrary
from sdfkit.ops import SdfNode, node_count

MANIFEST_VERSION = 1


def _sha256_of_file(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def _git_sha() -> str | None:
    """Current git HEAD, or None outside a checkout."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    if result.returncode == 0:
        return result.stdout.strip()
    return None


def formula_digest(library: FormulaLibrary) -> str:
    """Digest of both generated backends; changes whenever any formula does."""
    h = hashlib.sha256()
    h.update(library.python_source.encode("utf-8"))
    h.update(b"\0")
    h.update(library.wgsl_source.encode("utf-8"))
    return h.hexdigest()


def build_manifest(
    *,
    input_path: Path,
    output_path: Path,
    library: FormulaLibrary,
    tree: SdfNode | None = None,
    command_args: list[str] | None = None,
) -> dict:
    """Describe one shader build.

    Call it after the shader has been written so the output digest is final.
    """
    manifest: dict = {
        "manifest_version": MANIFEST_VERSION,
        "tool": _tool_info(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "input": _file_entry(input_path),
        "output": _file_entry(output_path),
        "formulas": {"count": len(library.names), "sha256": formula_digest(library)},
    }
    if tree is not None:
        manifest["tree"] = {"root": tree.variant, "nodes": node_count(tree)}
    if command_args is not None:
        manifest["command_args"] = list(command_args)
    return manifest


def _tool_info() -> dict:
    return {
        "name": "sdfkit",
        "version": __version__,
        "python": platform.python_version(),
        "git_sha": _git_sha(),
    }


def _file_entry(path: Path) -> dict:
    return {"path": str(path), "sha256": _sha256_of_file(path)}
