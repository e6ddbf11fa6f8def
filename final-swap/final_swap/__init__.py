"""final_swap - substitute sealed shared bindings with test doubles, restore them afterwards."""

from __future__ import annotations

from final_swap.accessor import AttributeAccessor, Binding, BindingAccessor
from final_swap.config import SwapConfig
from final_swap.doubles import DoubleFactory, MockDoubles
from final_swap.errors import (
    AccessDeniedError,
    AlreadyOpenError,
    BindingNotFoundError,
    InvalidTypeError,
    ScopeNotOpenWarning,
    SwapError,
)
from final_swap.scope import SubstitutionScope
from final_swap.sealing import FinalBindingError, Sealed, SealedMeta, SealedModule, seal_module

__all__ = [
    'AccessDeniedError',
    'AlreadyOpenError',
    'AttributeAccessor',
    'Binding',
    'BindingAccessor',
    'BindingNotFoundError',
    'DoubleFactory',
    'FinalBindingError',
    'InvalidTypeError',
    'MockDoubles',
    'ScopeNotOpenWarning',
    'Sealed',
    'SealedMeta',
    'SealedModule',
    'SubstitutionScope',
    'SwapConfig',
    'SwapError',
    'seal_module',
]
