"""Fixtures for final_swap tests.

``pristine_fake_app`` fails any test that leaves a fake_app binding or seal
modified. That catches restore bugs that would otherwise leak into the next
test.
"""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

import pytest

from final_swap.sealing import sealed_names
from tests.final_swap import fake_app
from tests.final_swap.sandbox import SANDBOX, Sandbox

_BINDINGS = [
    (fake_app.PaymentService, '_PaymentService__logger'),
    (fake_app.PaymentService, 'gateway'),
    (fake_app.RetryPolicy, 'MAX_ATTEMPTS'),
    (fake_app.RetryPolicy, '_RetryPolicy__backoff'),
    (fake_app.Settings, 'clock'),
    (fake_app.Settings, 'fallback'),
    (fake_app.Settings, 'region'),
    (fake_app, 'CLOCK'),
    (fake_app, 'TIMEOUT'),
    (fake_app, 'environment'),
]


def _snapshot() -> dict[tuple[int, str], Any]:
    state: dict[tuple[int, str], Any] = {}
    for owner, attribute in _BINDINGS:
        state[(id(owner), attribute)] = vars(owner)[attribute]
    for owner in (fake_app.PaymentService, fake_app.RefundService, fake_app.RetryPolicy, fake_app):
        state[(id(owner), '__sealed__')] = sealed_names(owner)
    return state


_PRISTINE = _snapshot()


@pytest.fixture(autouse=True)
def pristine_fake_app() -> Generator[None]:
    yield
    changed = sorted(
        attribute
        for (owner_id, attribute), value in _snapshot().items()
        if value is not _PRISTINE[(owner_id, attribute)] and value != _PRISTINE[(owner_id, attribute)]
    )
    if changed:
        pytest.fail(f'fake_app state leaked out of the test: {changed}')


@pytest.fixture
def sandbox() -> Generator[Sandbox]:
    yield SANDBOX
    SANDBOX.allow_all()
