"""Substitution settings.

Defaults suit most suites. Under pytest, the same settings can be changed per
project through ini keys::

    [tool.pytest.ini_options]
    final_swap_check_types = true
    final_swap_exclusive = true
    final_swap_autospec = false
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pydantic

if TYPE_CHECKING:
    import pytest

__all__ = [
    'INI_KEYS',
    'StrictModel',
    'SwapConfig',
]


class StrictModel(pydantic.BaseModel):
    """Base model with strict validation."""

    model_config = pydantic.ConfigDict(
        extra='forbid',  # Reject unknown fields (fail-fast)
        strict=True,  # Strict type coercion
        frozen=True,  # Immutable after creation
    )


class SwapConfig(StrictModel):
    """Settings shared by every SubstitutionScope built from it.

    Attributes:
        check_types: Reject a substitute type that is not a subclass of the
            binding's annotated type (InvalidTypeError at construction).
        exclusive: Refuse to open a scope on a binding another open scope
            already holds (AlreadyOpenError). Turning this off permits nested
            scopes on one binding. They must then exit in LIFO order, or the
            binding is left holding an inner substitute.
        autospec: Build doubles with ``create_autospec`` (signature-checked)
            rather than ``MagicMock(spec=...)``.
    """

    check_types: bool = True
    exclusive: bool = True
    autospec: bool = True

    @classmethod
    def from_pytest(cls, config: pytest.Config) -> SwapConfig:
        """Build from the ``final_swap_*`` ini keys registered by the pytest plugin."""
        return cls(**{field: bool(config.getini(key)) for field, key in INI_KEYS.items()})


# SwapConfig field -> pytest ini key
INI_KEYS: dict[str, str] = {
    'check_types': 'final_swap_check_types',
    'exclusive': 'final_swap_exclusive',
    'autospec': 'final_swap_autospec',
}
