"""pytest integration for final_swap.

Enable from a conftest.py::

    pytest_plugins = ['final_swap.pytest_plugin']

then substitute bindings per test::

    def test_rejects_negative(swap_binding: SwapBinding) -> None:
        logger = swap_binding(PaymentService, '__logger')
        PaymentService().charge(-1)
        logger.warning.assert_called_once()

Every scope opened through ``swap_binding`` is exited at teardown in reverse
order, including when the test fails.
"""

from __future__ import annotations

__all__ = [
    'SwapBinding',
    'final_swap_config',
    'swap_binding',
]

from collections.abc import Callable, Generator
from contextlib import ExitStack
from typing import Any

import pytest

from final_swap.accessor import Container
from final_swap.config import INI_KEYS, SwapConfig
from final_swap.scope import SubstitutionScope

type SwapBinding = Callable[..., Any]

_INI_HELP = {
    'check_types': 'reject substitute types that do not subclass the binding annotation',
    'exclusive': 'refuse a second open scope on an already substituted binding',
    'autospec': 'build doubles with create_autospec instead of MagicMock(spec=...)',
}


def pytest_addoption(parser: pytest.Parser) -> None:
    for field, key in INI_KEYS.items():
        parser.addini(key, help=f'final_swap: {_INI_HELP[field]}', type='bool', default=True)


@pytest.fixture(scope='session')
def final_swap_config(pytestconfig: pytest.Config) -> SwapConfig:
    return SwapConfig.from_pytest(pytestconfig)


@pytest.fixture
def swap_binding(final_swap_config: SwapConfig) -> Generator[SwapBinding]:
    """Open substitution scopes that close at teardown.

    Call as ``swap_binding(target, name, substitute_type=None)``. It returns the
    installed double.
    """
    with ExitStack() as stack:

        def swap(target: Container, name: str, substitute_type: type | None = None) -> Any:
            scope = SubstitutionScope(target, name, substitute_type, config=final_swap_config)
            return stack.enter_context(scope)

        yield swap
