"""YAML loading and version checking for formula specification files."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from sdfkit.errors import FormulaSpecError
from sdfkit.formula_models import FormulaFile, FormulaSpec

logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS: frozenset[str] = frozenset({"1.0"})

DEFAULT_FORMULA_DIR = Path(__file__).parent / "formula_specs"


def _make_yaml() -> YAML:
    """Create a ruamel.yaml safe loader that errors on duplicate keys."""
    yml = YAML(typ="safe")
    yml.allow_duplicate_keys = False
    return yml


def parse_formula_text(text: str, *, source: str = "<string>") -> list[FormulaSpec]:
    """Parse one formula file's YAML text into validated specs."""
    try:
        data = _make_yaml().load(text)
    except YAMLError as e:
        raise FormulaSpecError(f"{source}: invalid YAML: {e}") from e

    if not isinstance(data, dict):
        raise FormulaSpecError(f"{source}: top-level YAML value must be a mapping")
    version = data.get("version")
    if version is None:
        raise FormulaSpecError(f"{source}: missing required field: version")
    if str(version) not in SUPPORTED_VERSIONS:
        raise FormulaSpecError(
            f"{source}: unsupported version {version!r} "
            f"(supported: {', '.join(sorted(SUPPORTED_VERSIONS))})"
        )
    data["version"] = str(version)

    try:
        document = FormulaFile.model_validate(data)
    except PydanticValidationError as e:
        raise FormulaSpecError(f"{source}: schema validation failed:\n{e}") from e
    return document.formulas


def parse_formula_file(path: Path) -> list[FormulaSpec]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise FormulaSpecError(f"Cannot read file: {e}") from e
    return parse_formula_text(text, source=path.name)


def load_formula_specs(formula_dir: Path | None = None) -> list[FormulaSpec]:
    """Load every ``*.yaml`` file in ``formula_dir`` in filename order.

    Formula names must be unique across all files.
    """
    directory = Path(formula_dir) if formula_dir is not None else DEFAULT_FORMULA_DIR
    if not directory.is_dir():
        raise FormulaSpecError(f"Formula directory not found: {directory}")

    paths = sorted(directory.glob("*.yaml"))
    if not paths:
        raise FormulaSpecError(f"No formula files in {directory}")

    specs: list[FormulaSpec] = []
    origin: dict[str, str] = {}
    for path in paths:
        for spec in parse_formula_file(path):
            if spec.name in origin:
                raise FormulaSpecError(
                    f"Duplicate formula {spec.name!r} in {path.name} "
                    f"(first defined in {origin[spec.name]})"
                )
            origin[spec.name] = path.name
            specs.append(spec)
        logger.debug("loaded formulas from %s", path)
    return specs
