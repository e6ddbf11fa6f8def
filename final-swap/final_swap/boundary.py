"""Exception translation at the meta-level mutation boundary.

Rebinding a sealed attribute means writing to a class or module at the meta
level. The runtime can refuse that in several ways, each with its own
exception type:

- a PEP 578 audit hook vetoes ``final_swap.set_overridable`` or
  ``final_swap.write_value`` (hooks raise whatever they like, usually
  ``RuntimeError`` or ``PermissionError``),
- the container is an immutable builtin or extension type (``TypeError``),
- a read-only ``__dict__`` or custom metaclass raises ``AttributeError``.

To the caller these all mean one thing: the technique cannot be used in this
environment. MetaBoundary turns them into one known type, keeping the original
through exception chaining (``raise X from Y``) and the original traceback::

    denied = MetaBoundary(AccessDeniedError)

    with denied:
        type.__setattr__(owner, '__sealed__', names)

    @denied
    def unlock(owner: type) -> None:
        ...

Errors that are part of the contract pass through untouched via
``passthrough``. For example, ``FinalBindingError`` on a write means the caller
forgot to lift the constraint. That is a usage bug, not a denial.

System exceptions (``KeyboardInterrupt``, ``SystemExit``) and control-flow
exceptions (``StopIteration``, ``GeneratorExit``) are never translated.
"""

from __future__ import annotations

__all__ = ['MetaBoundary']

import functools
from collections.abc import Callable
from types import TracebackType
from typing import Any, Self, TypeVar, cast

from final_swap.errors import AccessDeniedError

_F = TypeVar('_F', bound=Callable[..., object])

# Exception subclasses that drive iterator/generator protocols. Translating
# them breaks those protocols.
_CONTROL_FLOW = (StopIteration, StopAsyncIteration, GeneratorExit)


class MetaBoundary:
    """Translate exceptions from meta-level operations into a known type.

    Args:
        target: Exception type to translate into. Must accept a string message.
        passthrough: Exception types that propagate unchanged.
    """

    def __init__(
        self,
        target: type[Exception] = AccessDeniedError,
        *,
        passthrough: tuple[type[BaseException], ...] = (),
    ) -> None:
        self._target = target
        self._passthrough = passthrough

    def __call__(self, func: _F) -> _F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with self:
                return func(*args, **kwargs)

        return cast(_F, wrapper)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_val is None or isinstance(exc_val, self._target):
            return  # No exception, or already translated
        if not isinstance(exc_val, Exception) or isinstance(exc_val, _CONTROL_FLOW + self._passthrough):
            return
        message = f'{type(exc_val).__name__}: {exc_val}'
        raise self._target(message).with_traceback(exc_tb) from exc_val
