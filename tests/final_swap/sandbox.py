"""A restrictive runtime simulated with a PEP 578 audit hook.

Audit hooks cannot be removed once added, so one hook is installed on first
import and consults a rule list. The ``sandbox`` fixture clears the rules at
teardown.
"""

from __future__ import annotations

import sys
from typing import Any


class Sandbox:
    """Deny an audit event whose leading arguments match a rule.

    The first argument (the owner) is compared by identity, the rest by
    equality. ``deny('final_swap.set_overridable', Owner, 'NAME', False)``
    refuses only reinstating the seal on ``Owner.NAME``.
    """

    def __init__(self) -> None:
        self._rules: list[tuple[str, object, tuple[Any, ...]]] = []

    def deny(self, event: str, target: object, *args: Any) -> None:
        self._rules.append((event, target, args))

    def allow_all(self) -> None:
        self._rules.clear()

    def __call__(self, event: str, args: tuple[Any, ...]) -> None:
        for denied_event, target, expected in self._rules:
            if event != denied_event or not args or args[0] is not target:
                continue
            if tuple(args[1 : 1 + len(expected)]) == expected:
                raise PermissionError(f'sandbox policy forbids {event} on {target!r}')


SANDBOX = Sandbox()
sys.addaudithook(SANDBOX)
