"""Scoped substitution of a sealed shared binding.

A SubstitutionScope swaps one class or module binding for a test double while
a test runs, then puts the original back however the test ends::

    scope = SubstitutionScope(PaymentService, '__logger', logging.Logger)

    with scope as logger:
        PaymentService().charge(-1)
        logger.warning.assert_called_once_with('rejected charge', ANY)

The scope is reusable. Create it once per fixture and enter it once per test.
The double keeps its identity across activations, and its recorded calls are
cleared on every entry, so assertions never see a previous test's calls.

Runner integration:

    pytest (fixture)::

        @pytest.fixture
        def logger() -> Generator[Mock]:
            with scope as substitute:
                yield substitute

      or the ``swap_binding`` fixture from ``final_swap.pytest_plugin``.

    unittest::

        def setUp(self) -> None:
            self.logger = scope.attach(self)  # exit_scope() registered via addCleanup

    decorator (sync or async)::

        @scope
        def test_rejects_negative() -> None: ...

Only one open scope may hold a given binding at a time. A second scope on the
same binding raises AlreadyOpenError immediately rather than waiting. This
protects sequential suites from forgotten exits and overlapping fixtures. It
does NOT make concurrent tests safe: the binding is process-wide state, and
parallel tests that substitute the same binding from several threads are
unsupported.
"""

from __future__ import annotations

__all__ = ['SubstitutionScope']

import functools
import inspect
import logging
import threading
import warnings
from collections.abc import Callable
from types import TracebackType
from typing import TYPE_CHECKING, Any, Final, Generic, TypeVar, cast

from final_swap.accessor import AttributeAccessor, Binding, BindingAccessor, Container
from final_swap.config import SwapConfig
from final_swap.doubles import DoubleFactory, MockDoubles
from final_swap.errors import AlreadyOpenError, InvalidTypeError, ScopeNotOpenWarning

if TYPE_CHECKING:
    import unittest

logger = logging.getLogger(__name__)

_T = TypeVar('_T')
_F = TypeVar('_F', bound=Callable[..., object])

_UNSET: Final = object()


class _Claims:
    """Bindings currently held by an open scope, keyed by (owner, attribute)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._holders: dict[tuple[object, str], SubstitutionScope[Any]] = {}

    def acquire(self, binding: Binding, scope: SubstitutionScope[Any]) -> None:
        key = (binding.owner, binding.attribute)
        with self._lock:
            holder = self._holders.get(key)
            if holder is not None and holder is not scope:
                raise AlreadyOpenError(f'[{binding.qualname}] already substituted by {holder!r}; exit that scope first')
            self._holders[key] = scope

    def release(self, binding: Binding, scope: SubstitutionScope[Any]) -> None:
        key = (binding.owner, binding.attribute)
        with self._lock:
            if self._holders.get(key) is scope:
                del self._holders[key]


_claims = _Claims()


class SubstitutionScope(Generic[_T]):
    """Install a double in place of a sealed binding for the length of a scope.

    Construction resolves the binding and builds the double but does not touch
    the binding. Nothing is mutated until ``enter_scope()``.

    Args:
        target: Class or module that holds the binding.
        name: Binding name as written in source. Private ``__names`` are
            mangled against the class that declares them.
        substitute_type: Type the double imitates. Defaults to the binding's
            annotated type, then to the type of its current value.
        doubles: Double factory. Defaults to ``MockDoubles``.
        accessor: Binding accessor. Defaults to ``AttributeAccessor``.
        config: Defaults to ``SwapConfig()``.

    Raises:
        BindingNotFoundError: ``name`` does not resolve on ``target``.
        InvalidTypeError: ``substitute_type`` is not a subclass of the
            binding's annotated type or, for an unannotated binding, shares
            no inheritance line with the current value's type. Also raised
            when no type can be inferred.
    """

    def __init__(
        self,
        target: Container,
        name: str,
        substitute_type: type[_T] | None = None,
        *,
        doubles: DoubleFactory | None = None,
        accessor: BindingAccessor | None = None,
        config: SwapConfig | None = None,
    ) -> None:
        self._config = config or SwapConfig()
        self._accessor: BindingAccessor = accessor or AttributeAccessor()
        self._doubles: DoubleFactory = doubles or MockDoubles(autospec=self._config.autospec)
        self._target = target
        self._name = name
        self._binding = self._accessor.resolve(target, name)
        self._substitute: _T = self._doubles.create(self._substitute_type(substitute_type))
        self._original: Any = _UNSET
        self._open = False

    def _substitute_type(self, requested: type[_T] | None) -> type[_T]:
        qualname = self._binding.qualname
        declared = self._accessor.declared_type(self._target, self._name)
        current = self._accessor.read_current(self._target, self._name)
        if requested is None:
            if declared is not None:
                return cast(type[_T], declared)
            if current is None:
                raise InvalidTypeError(f'[{qualname}] is unannotated and holds None; pass substitute_type explicitly')
            return cast(type[_T], type(current))
        if not isinstance(requested, type):
            raise InvalidTypeError(f'[{qualname}] substitute_type must be a class, got {requested!r}')
        if not self._config.check_types:
            return requested
        if declared is not None:
            if not _is_subclass(requested, declared):
                raise InvalidTypeError(
                    f'[{qualname}] is declared as {declared.__qualname__}; '
                    f'{requested.__qualname__} is not a subclass of it'
                )
        elif current is not None and not _is_related(requested, type(current)):
            raise InvalidTypeError(
                f'[{qualname}] is unannotated and holds a {type(current).__qualname__}; '
                f'{requested.__qualname__} is neither a subclass nor a base of it'
            )
        return requested

    # -- State --

    @property
    def target(self) -> Container:
        return self._target

    @property
    def name(self) -> str:
        return self._name

    @property
    def binding(self) -> Binding:
        return self._binding

    @property
    def substitute(self) -> _T:
        """The double. Same object across activations."""
        return self._substitute

    def get_substitute(self) -> _T:
        return self._substitute

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def original(self) -> Any:
        """Value captured by the current activation.

        Raises:
            RuntimeError: The scope is not open.
        """
        if not self._open:
            raise RuntimeError(f'[{self._binding.qualname}] no original captured; scope is not open')
        return self._original

    # -- Lifecycle --

    def enter_scope(self) -> _T:
        """Clear the double's history and install it in place of the binding.

        Returns:
            The double.

        Raises:
            AlreadyOpenError: This scope, or (with ``config.exclusive``)
                another scope on the same binding, is already open. The
                binding is left as it was.
        """
        if self._open:
            raise AlreadyOpenError(
                f'[{self._binding.qualname}] scope is already open; exit_scope() must run before enter_scope()'
            )
        if self._config.exclusive:
            _claims.acquire(self._binding, self)
        try:
            self._doubles.reset(self._substitute)
            self._original = self._accessor.capture_and_replace(self._target, self._name, self._substitute)
        except BaseException:
            _claims.release(self._binding, self)
            raise
        self._open = True
        logger.debug(f'[{self._binding.qualname}] scope entered')
        return self._substitute

    def exit_scope(self) -> None:
        """Put the captured original back and close the scope.

        Calling this on a scope that is not open restores nothing, logs a
        warning and emits ScopeNotOpenWarning.

        If the restore fails, the error propagates and the scope stays open:
        the binding may still hold the double, ``original`` still returns the
        captured value, and calling exit_scope() again retries the restore.
        """
        qualname = self._binding.qualname
        if not self._open:
            message = f'[{qualname}] exit_scope() called on a scope that is not open; nothing restored'
            logger.warning(message)
            warnings.warn(message, ScopeNotOpenWarning, stacklevel=2)
            return
        try:
            self._accessor.restore(self._target, self._name, self._original)
        except BaseException as error:
            error.add_note(f'[{qualname}] scope left open with the original kept; call exit_scope() to retry')
            raise
        self._original = _UNSET
        self._open = False
        _claims.release(self._binding, self)
        logger.debug(f'[{qualname}] scope exited')

    def attach(self, test_case: unittest.TestCase) -> _T:
        """Enter now and exit in ``test_case``'s cleanup phase, pass or fail."""
        substitute = self.enter_scope()
        test_case.addCleanup(self.exit_scope)
        return substitute

    # -- Decorator protocol --

    def __call__(self, func: _F) -> _F:
        """Run ``func`` inside a fresh activation of this scope (sync or async)."""
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                async with self:
                    return await func(*args, **kwargs)

            return cast(_F, async_wrapper)

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with self:
                return func(*args, **kwargs)

        return cast(_F, sync_wrapper)

    # -- Sync context manager --

    def __enter__(self) -> _T:
        return self.enter_scope()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._exit_guarded(exc_val)

    # -- Async context manager --

    async def __aenter__(self) -> _T:
        return self.enter_scope()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._exit_guarded(exc_val)

    def _exit_guarded(self, body_error: BaseException | None) -> None:
        """Exit after the guarded body. Never suppresses the body's error.

        If the body raised and the restore raises too, both are reported in a
        BaseExceptionGroup rather than letting the restore error hide the
        body's.
        """
        try:
            self.exit_scope()
        except Exception as restore_error:
            if body_error is None:
                raise
            raise BaseExceptionGroup(
                f'[{self._binding.qualname}] guarded code failed and the original could not be restored',
                [body_error, restore_error],
            ) from None

    def __repr__(self) -> str:
        state = 'open' if self._open else 'closed'
        return f'<{type(self).__name__} {self._binding.qualname} ({state})>'


def _is_subclass(candidate: type, declared: type) -> bool:
    try:
        return issubclass(candidate, declared)
    except TypeError:
        return True  # Non-runtime-checkable protocol: nothing to check against


def _is_related(candidate: type, current: type) -> bool:
    """Unannotated bindings: accept any class on the current value's inheritance line."""
    return _is_subclass(candidate, current) or _is_subclass(current, candidate)
