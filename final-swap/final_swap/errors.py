"""Exception taxonomy for binding substitution.

Every error here is fatal for the test unit that triggers it. Nothing in
final_swap catches and suppresses these. They propagate to the test runner
with the original diagnostic intact.

Each type also subclasses the closest builtin, so callers that already handle
``AttributeError`` / ``PermissionError`` / ``TypeError`` / ``RuntimeError``
keep working.
"""

from __future__ import annotations

__all__ = [
    'AccessDeniedError',
    'AlreadyOpenError',
    'BindingNotFoundError',
    'InvalidTypeError',
    'ScopeNotOpenWarning',
    'SwapError',
]


class SwapError(Exception):
    """Base class for all final_swap errors."""


class BindingNotFoundError(SwapError, AttributeError):
    """Target/name pair does not resolve to a class or module binding.

    Usually a typo or the wrong target class.
    """


class AccessDeniedError(SwapError, PermissionError):
    """The runtime refused a meta-level read or write.

    Raised when an audit hook vetoes the mutation or the container is
    immutable (builtin and extension types). The technique cannot be used in
    this environment, so there is nothing to retry.
    """


class InvalidTypeError(SwapError, TypeError):
    """Substitute type is incompatible with the binding's declared type."""


class AlreadyOpenError(SwapError, RuntimeError):
    """A scope was entered while it, or another scope on the same binding, is open."""


class ScopeNotOpenWarning(RuntimeWarning):
    """exit_scope() was called on a scope that is not open."""
