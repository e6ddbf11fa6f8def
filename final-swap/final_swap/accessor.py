"""Mechanical access to restricted shared bindings.

BindingAccessor is the only place in final_swap that touches classes and
modules at the meta level. It knows how to find a binding (including
name-mangled private ones), read it raw, lift and reinstate its seal, and
write it. It has no notion of scopes, doubles, or test lifecycles. That policy
lives in ``final_swap.scope``.

Ordering contract of the composite operations::

    capture_and_replace:  lift -> read -> write -> reinstate
    restore:              lift -> write -> reinstate

Lift and reinstate happen only when the binding is sealed at the time of the
call. A failed write never leaves the binding unsealed, and a failed
reinstate in ``capture_and_replace`` puts the original back. Between the two composite calls the binding stays
sealed, and production code keeps its read-only view while a test runs.

The runtime can veto any meta-level write. Audit hooks see
``final_swap.set_overridable`` (owner, attribute, enabled) before every seal
change and ``final_swap.write_value`` (owner, attribute, value) before every
write. Immutable builtin and extension types refuse writes on their own. A veto
surfaces as ``AccessDeniedError``, which is fatal: this technique does not work
inside a restrictive sandbox.
"""

from __future__ import annotations

__all__ = [
    'AttributeAccessor',
    'Binding',
    'BindingAccessor',
    'Container',
]

import inspect
import logging
import sys
import types
import typing
from dataclasses import dataclass
from typing import Annotated, Any, ClassVar, Final, Protocol, Union, get_args, get_origin

from final_swap.boundary import MetaBoundary
from final_swap.errors import AccessDeniedError, BindingNotFoundError
from final_swap.sealing import SEALED_ATTR, FinalBindingError, mangle, sealed_names, supports_sealing

logger = logging.getLogger(__name__)

type Container = type | types.ModuleType

_WRAPPERS = (Final, ClassVar, Annotated)
_UNIONS = (Union, types.UnionType)

_denied = MetaBoundary(AccessDeniedError, passthrough=(FinalBindingError,))


@dataclass(frozen=True, slots=True)
class Binding:
    """A resolved binding: where it is stored and under which key."""

    owner: Container
    attribute: str
    name: str

    @property
    def qualname(self) -> str:
        if isinstance(self.owner, types.ModuleType):
            return f'{self.owner.__name__}.{self.attribute}'
        return f'{self.owner.__module__}.{self.owner.__qualname__}.{self.attribute}'


class BindingAccessor(Protocol):
    """Policy-free manipulation of one restricted binding."""

    def resolve(self, target: Container, name: str) -> Binding: ...

    def read_current(self, target: Container, name: str) -> Any: ...

    def is_sealed(self, target: Container, name: str) -> bool: ...

    def set_overridable(self, target: Container, name: str, enabled: bool) -> None: ...

    def write_value(self, target: Container, name: str, value: Any) -> None: ...

    def capture_and_replace(self, target: Container, name: str, new_value: Any) -> Any: ...

    def restore(self, target: Container, name: str, original: Any) -> None: ...

    def declared_type(self, target: Container, name: str) -> type | None: ...


class AttributeAccessor:
    """BindingAccessor for CPython classes and modules."""

    def resolve(self, target: Container, name: str) -> Binding:
        """Find the container that stores ``name``.

        Classes are searched along the MRO. Private names (``__x``) are mangled
        against each class in turn, so a private binding declared on a base
        class resolves to that base.

        Raises:
            BindingNotFoundError: ``target`` is not a class or module, or no
                container along the lookup path stores ``name``.
        """
        if isinstance(target, types.ModuleType):
            if name in vars(target):
                return Binding(target, name, name)
            raise BindingNotFoundError(f'module {target.__name__!r} has no binding {name!r}')
        if not isinstance(target, type):
            raise BindingNotFoundError(
                f'{target!r} is not a class or module; only shared (class/module) bindings can be swapped'
            )
        for klass in target.__mro__:
            attribute = mangle(klass.__name__, name)
            if attribute in vars(klass):
                return Binding(klass, attribute, name)
        raise BindingNotFoundError(f'class {target.__module__}.{target.__qualname__} has no binding {name!r}')

    def read_current(self, target: Container, name: str) -> Any:
        """Raw stored value, read from ``__dict__`` so descriptors survive a round trip."""
        binding = self.resolve(target, name)
        return vars(binding.owner)[binding.attribute]

    def is_sealed(self, target: Container, name: str) -> bool:
        binding = self.resolve(target, name)
        return supports_sealing(binding.owner) and binding.attribute in sealed_names(binding.owner)

    def set_overridable(self, target: Container, name: str, enabled: bool) -> None:
        """Lift (``enabled=True``) or reinstate (``enabled=False``) the seal.

        No-op when the binding is already in the requested state. Lifting a
        binding on a container that cannot be sealed is therefore always a
        no-op.

        Raises:
            AccessDeniedError: An audit hook or the runtime refused the change.
            TypeError: Reinstating on a container that cannot be sealed.
        """
        binding = self.resolve(target, name)
        owner = binding.owner
        if self.is_sealed(target, name) != enabled:
            return
        if not supports_sealing(owner):
            raise TypeError(f'[{binding.qualname}] {owner!r} cannot hold sealed bindings')
        current = sealed_names(owner)
        names = current - {binding.attribute} if enabled else current | {binding.attribute}
        with _denied:
            sys.audit('final_swap.set_overridable', owner, binding.attribute, enabled)
            if isinstance(owner, type):
                type.__setattr__(owner, SEALED_ATTR, names)
            else:
                vars(owner)[SEALED_ATTR] = names
        logger.debug(f'[{binding.qualname}] seal {"lifted" if enabled else "reinstated"}')

    def write_value(self, target: Container, name: str, value: Any) -> None:
        """Overwrite the binding. The caller lifts the seal first.

        Raises:
            FinalBindingError: The binding is still sealed.
            AccessDeniedError: The runtime refused the write.
        """
        binding = self.resolve(target, name)
        with _denied:
            sys.audit('final_swap.write_value', binding.owner, binding.attribute, value)
            setattr(binding.owner, binding.attribute, value)

    def capture_and_replace(self, target: Container, name: str, new_value: Any) -> Any:
        """Install ``new_value`` and return the value it replaced.

        All or nothing: if reinstating the seal fails after the write, the
        original is written back before the error propagates. The seal itself
        stays lifted in that case, since the runtime refused to reinstate it.
        """
        binding = self.resolve(target, name)
        relock = self.is_sealed(target, name)
        if relock:
            self.set_overridable(target, name, True)
        try:
            original = self.read_current(target, name)
            self.write_value(target, name, new_value)
        except BaseException:
            if relock:
                self.set_overridable(target, name, False)
            raise
        if relock:
            try:
                self.set_overridable(target, name, False)
            except BaseException:
                self.write_value(target, name, original)
                raise
        logger.debug(f'[{binding.qualname}] replaced {type(original).__qualname__} value')
        return original

    def restore(self, target: Container, name: str, original: Any) -> None:
        """Write ``original`` back. The seal is reinstated even if the write fails."""
        binding = self.resolve(target, name)
        relock = self.is_sealed(target, name)
        if relock:
            self.set_overridable(target, name, True)
        try:
            self.write_value(target, name, original)
        finally:
            if relock:
                self.set_overridable(target, name, False)
        logger.debug(f'[{binding.qualname}] restored {type(original).__qualname__} value')

    def declared_type(self, target: Container, name: str) -> type | None:
        """Best-effort class the binding is declared as, from its annotation.

        ``Final[X]``, ``ClassVar[X]``, ``Annotated[X, ...]`` and ``X | None``
        unwrap to ``X``. Parametrised generics reduce to their origin class.
        Anything else (unions, protocols-as-strings, unresolved forward
        references) yields None.
        """
        binding = self.resolve(target, name)
        try:
            hints = typing.get_type_hints(binding.owner, include_extras=True)
        except (NameError, TypeError, SyntaxError, AttributeError):
            hints = _raw_annotations(binding.owner)
        if binding.attribute not in hints:
            return None
        return _annotation_class(hints[binding.attribute])


def _raw_annotations(owner: Container) -> dict[str, Any]:
    try:
        return inspect.get_annotations(owner)
    except NameError:
        return {}


def _annotation_class(annotation: Any) -> type | None:
    while get_origin(annotation) in _WRAPPERS:
        args = get_args(annotation)
        if not args:
            return None
        annotation = args[0]
    if get_origin(annotation) in _UNIONS:
        arms = [arm for arm in get_args(annotation) if arm is not type(None)]
        if len(arms) != 1:
            return None
        return _annotation_class(arms[0])
    if isinstance(annotation, type):
        return annotation
    origin = get_origin(annotation)
    if isinstance(origin, type):
        return origin
    return None  # Bare Final/ClassVar, strings, special forms
