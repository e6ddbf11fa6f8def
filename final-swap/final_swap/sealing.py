"""Sealed (final) bindings on classes and modules.

Python has no ``final`` keyword at runtime. ``typing.Final`` is advisory and
only type checkers enforce it. This module adds runtime enforcement for shared
bindings, the kind of process-wide dependency (a logger, a clock, a client)
that production code reads from a class or module attribute::

    class PaymentService(Sealed):
        __logger: Final[logging.Logger] = logging.getLogger('payments')

    PaymentService._PaymentService__logger = other   # FinalBindingError

and for modules::

    CLOCK: Final = SystemClock()

    seal_module(__name__)

The constraint is membership of the stored name in the container's own
``__sealed__`` frozenset. ``SealedMeta.__setattr__`` / ``SealedModule.__setattr__``
consult it on every assignment and deletion, including rebinding
``__sealed__`` itself. Only meta-level writes that bypass the guard
(``type.__setattr__`` on the class, the module ``__dict__``) can change it.
``final_swap.accessor`` is the one place that does so.

Limitations:
    Code inside a sealed module that uses ``global NAME; NAME = ...`` writes
    the module dict directly and is not guarded. The guard covers attribute
    assignment from the outside, which is what test code and other modules do.
"""

from __future__ import annotations

__all__ = [
    'SEALED_ATTR',
    'FinalBindingError',
    'Sealed',
    'SealedMeta',
    'SealedModule',
    'is_sealed',
    'mangle',
    'seal_module',
    'sealed_names',
    'supports_sealing',
]

import inspect
import re
import sys
import types
from typing import Any, Final, get_origin

from final_swap.errors import BindingNotFoundError

SEALED_ATTR: Final = '__sealed__'

# Stringized annotations (``from __future__ import annotations``) never reach
# the typing machinery, so Final is recognised by spelling.
_FINAL_PATTERN = re.compile(r'^\s*(?:typing(?:_extensions)?\.)?Final\b')


class FinalBindingError(AttributeError):
    """Assignment to, or deletion of, a sealed binding."""

    def __init__(self, container: object, attribute: str) -> None:
        self.container = container
        self.attribute = attribute
        super().__init__(f'cannot rebind sealed attribute {attribute!r} of {_describe(container)}')


def mangle(class_name: str, name: str) -> str:
    """Apply Python's private-name mangling (``__x`` in class ``C`` -> ``_C__x``)."""
    if not name.startswith('__') or name.endswith('__') or '.' in name:
        return name
    stripped = class_name.lstrip('_')
    if not stripped:
        return name
    return f'_{stripped}{name}'


def sealed_names(container: object) -> frozenset[str]:
    """Names sealed on ``container`` itself (not inherited lookups)."""
    namespace = getattr(container, '__dict__', {})
    return frozenset(namespace.get(SEALED_ATTR, ()))


def is_sealed(container: object, attribute: str) -> bool:
    return attribute in sealed_names(container)


def supports_sealing(container: object) -> bool:
    """Whether ``container`` enforces ``__sealed__`` on assignment."""
    return isinstance(container, (SealedMeta, SealedModule))


def _final_annotations(container: object) -> set[str]:
    """Names whose own annotation on ``container`` is ``Final``."""
    try:
        annotations = inspect.get_annotations(container)  # type: ignore[arg-type]
    except NameError:
        return set()  # Lazily evaluated annotation refers to an undefined name
    return {name for name, annotation in annotations.items() if _is_final(annotation)}


def _is_final(annotation: object) -> bool:
    if isinstance(annotation, str):
        return _FINAL_PATTERN.match(annotation) is not None
    return annotation is Final or get_origin(annotation) is Final


def _describe(container: object) -> str:
    if isinstance(container, types.ModuleType):
        return f'module {container.__name__!r}'
    if isinstance(container, type):
        return f'class {container.__module__}.{container.__qualname__}'
    return repr(container)


class SealedMeta(type):
    """Metaclass that refuses to rebind sealed class attributes.

    Sealed names are collected at class creation from:

    - an explicit ``__sealed__`` iterable in the class body (private names are
      mangled like the compiler would),
    - attributes annotated ``Final`` / ``Final[...]``,
    - the sealed names of each base.
    """

    def __init__(cls, name: str, bases: tuple[type, ...], namespace: dict[str, Any], **kwargs: Any) -> None:
        super().__init__(name, bases, namespace, **kwargs)
        declared = namespace.get(SEALED_ATTR, ())
        if isinstance(declared, str):
            declared = (declared,)
        names = {mangle(name, attribute) for attribute in declared}
        names.update(_final_annotations(cls))
        for base in bases:
            names.update(sealed_names(base))
        type.__setattr__(cls, SEALED_ATTR, frozenset(names))

    def __setattr__(cls, name: str, value: Any) -> None:
        if name == SEALED_ATTR or name in sealed_names(cls):
            raise FinalBindingError(cls, name)
        super().__setattr__(name, value)

    def __delattr__(cls, name: str) -> None:
        if name == SEALED_ATTR or name in sealed_names(cls):
            raise FinalBindingError(cls, name)
        super().__delattr__(name)


class Sealed(metaclass=SealedMeta):
    """Base class for classes that hold sealed shared bindings."""

    __slots__ = ()


class SealedModule(types.ModuleType):
    """Module type that refuses to rebind sealed module globals."""

    def __setattr__(self, name: str, value: Any) -> None:
        if name == SEALED_ATTR or name in sealed_names(self):
            raise FinalBindingError(self, name)
        super().__setattr__(name, value)

    def __delattr__(self, name: str) -> None:
        if name == SEALED_ATTR or name in sealed_names(self):
            raise FinalBindingError(self, name)
        super().__delattr__(name)


def seal_module(module: types.ModuleType | str, *names: str) -> types.ModuleType:
    """Seal ``names`` and every ``Final``-annotated global of ``module``.

    Usually called at the bottom of the module being sealed::

        seal_module(__name__)

    Calling it again adds names to the existing seal.

    Raises:
        BindingNotFoundError: A requested name is not defined in the module.
    """
    if isinstance(module, str):
        module = sys.modules[module]
    namespace = vars(module)
    requested = set(names)
    requested.update(_final_annotations(module))
    missing = sorted(name for name in requested if name not in namespace)
    if missing:
        raise BindingNotFoundError(f'module {module.__name__!r} has no binding(s): {", ".join(missing)}')
    if not isinstance(module, SealedModule):
        module.__class__ = SealedModule
    namespace[SEALED_ATTR] = sealed_names(module) | requested
    return module
