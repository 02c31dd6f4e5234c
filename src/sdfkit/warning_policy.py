"""Warning policy controls for sdfkit tree diagnostics."""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass

from sdfkit.errors import ValidationError

logger = logging.getLogger(__name__)

CODE_DESCRIPTIONS: dict[str, str] = {
    "W01": "plane normal is not unit length (it is normalised when evaluated)",
    "W02": "shape is unbounded; bounding box uses a fixed finite extent",
    "W03": "smooth blend radius is zero (behaves like the hard operation)",
    "W04": "repetition spacing is smaller than the repeated shape",
}

KNOWN_CODES: frozenset[str] = frozenset(CODE_DESCRIPTIONS)


class SdfkitWarning(UserWarning):
    """Warning carrying a machine-readable code."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        super().__init__(f"[{code}] {message}")


@dataclass(frozen=True)
class WarningPolicy:
    """Which warning codes are dropped and which become errors."""

    warn_as_error: frozenset[str] = frozenset()
    suppress: frozenset[str] = frozenset()

    @classmethod
    def from_code_lists(
        cls, warn_as_error: str | None = None, suppress: str | None = None
    ) -> WarningPolicy | None:
        """Build a policy from comma-separated code lists; None when both are unset."""
        if warn_as_error is None and suppress is None:
            return None
        return cls(
            warn_as_error=parse_code_list(warn_as_error) if warn_as_error else frozenset(),
            suppress=parse_code_list(suppress) if suppress else frozenset(),
        )


def emit_warning(code: str, message: str, *, policy: WarningPolicy | None = None) -> None:
    """Emit a coded warning, respecting the active policy.

    - Codes in ``policy.suppress`` are dropped.
    - Codes in ``policy.warn_as_error`` raise ``ValidationError``.
    - Anything else is issued as a ``SdfkitWarning``.
    """
    if policy is not None:
        if code in policy.suppress:
            logger.debug("suppressed %s: %s", code, message)
            return
        if code in policy.warn_as_error:
            raise ValidationError(f"[{code}] {message}")

    warnings.warn(SdfkitWarning(code, message), stacklevel=2)


def parse_code_list(raw: str) -> frozenset[str]:
    """Parse ``"W01, W03"`` into a set of known codes.

    Raises ``ValueError`` for unknown codes.
    """
    codes: set[str] = set()
    for token in raw.split(","):
        token = token.strip().upper()
        if not token:
            continue
        if token not in KNOWN_CODES:
            raise ValueError(f"Unknown warning code: {token!r} (known: {sorted(KNOWN_CODES)})")
        codes.add(token)
    return frozenset(codes)
