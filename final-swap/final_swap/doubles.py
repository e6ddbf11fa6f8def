"""Test-double creation and history reset.

SubstitutionScope needs only two things from a mocking library: build a double
that looks like a given type, and clear what that double has recorded.
``DoubleFactory`` names those two calls so any mocking library can be plugged
in. ``MockDoubles`` is the ``unittest.mock`` implementation used by default.
"""

from __future__ import annotations

__all__ = [
    'DoubleFactory',
    'MockDoubles',
]

from typing import Any, Protocol, TypeVar, cast
from unittest import mock

_T = TypeVar('_T')


class DoubleFactory(Protocol):
    def create(self, spec: type[_T]) -> _T: ...

    def reset(self, double: Any) -> None: ...


class MockDoubles:
    """Doubles built by ``unittest.mock``.

    Args:
        autospec: Build doubles with ``create_autospec(spec, instance=True)``
            so call signatures are checked against ``spec``. When False, a
            ``MagicMock(spec=spec)`` is used, which checks attribute names
            only.
    """

    def __init__(self, *, autospec: bool = True) -> None:
        self._autospec = autospec

    def create(self, spec: type[_T]) -> _T:
        if self._autospec:
            return cast(_T, mock.create_autospec(spec, instance=True))
        return cast(_T, mock.MagicMock(spec=spec))

    def reset(self, double: Any) -> None:
        """Clear recorded calls. Configured return values and side effects are kept."""
        double.reset_mock()
