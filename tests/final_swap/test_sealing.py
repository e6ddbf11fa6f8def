"""Tests for sealed bindings: the runtime constraint final_swap lifts and reinstates."""

from __future__ import annotations

import runpy
import types
from typing import ClassVar, Final

import pytest

from final_swap import sealing
from final_swap.errors import BindingNotFoundError
from final_swap.sealing import (
    FinalBindingError,
    Sealed,
    SealedModule,
    is_sealed,
    mangle,
    seal_module,
    sealed_names,
    supports_sealing,
)
from tests.final_swap import fake_app


class TestMangle:
    @pytest.mark.parametrize(
        'class_name, name, expected',
        [
            ('Service', '__logger', '_Service__logger'),
            ('_Service', '__logger', '_Service__logger'),
            ('Service', '__init__', '__init__'),
            ('Service', '_logger', '_logger'),
            ('Service', 'logger', 'logger'),
            ('___', '__logger', '__logger'),
        ],
    )
    def test_matches_compiler_mangling(self, class_name: str, name: str, expected: str) -> None:
        assert mangle(class_name, name) == expected


class TestSealedMeta:
    """Verify which class attributes are sealed and that assignment is refused."""

    def test_final_annotation_seals_private_name(self) -> None:
        assert sealed_names(fake_app.PaymentService) == {'_PaymentService__logger'}

    def test_explicit_sealed_names_are_mangled(self) -> None:
        assert sealed_names(fake_app.RetryPolicy) == {'MAX_ATTEMPTS', '_RetryPolicy__backoff'}

    def test_subclass_inherits_base_seals(self) -> None:
        assert '_PaymentService__logger' in sealed_names(fake_app.RefundService)

    def test_assignment_refused(self) -> None:
        with pytest.raises(FinalBindingError) as exc_info:
            fake_app.RetryPolicy.MAX_ATTEMPTS = 10
        assert exc_info.value.attribute == 'MAX_ATTEMPTS'
        assert 'RetryPolicy' in str(exc_info.value)
        assert fake_app.RetryPolicy.MAX_ATTEMPTS == 3

    def test_deletion_refused(self) -> None:
        with pytest.raises(FinalBindingError):
            del fake_app.RetryPolicy.MAX_ATTEMPTS

    def test_sealed_set_cannot_be_rebound(self) -> None:
        with pytest.raises(FinalBindingError):
            fake_app.RetryPolicy.__sealed__ = frozenset()

    def test_is_attribute_error(self) -> None:
        """Code that guards with ``except AttributeError`` still catches it."""
        with pytest.raises(AttributeError):
            fake_app.RetryPolicy.MAX_ATTEMPTS = 10

    def test_unsealed_attribute_assignable(self) -> None:
        class Local(Sealed):
            LIMIT: Final = 1
            label = 'a'

        Local.label = 'b'
        assert Local.label == 'b'
        assert not is_sealed(Local, 'label')

    def test_classvar_is_not_sealed(self) -> None:
        class Local(Sealed):
            registry: ClassVar[dict[str, int]] = {}

        assert sealed_names(Local) == frozenset()

    def test_single_string_sealed_declaration(self) -> None:
        class Local(Sealed):
            __sealed__ = 'LIMIT'
            LIMIT = 5

        assert sealed_names(Local) == {'LIMIT'}

    def test_instance_attributes_unaffected(self) -> None:
        service = fake_app.PaymentService()
        service.note = 'instance state'
        assert service.note == 'instance state'


class TestSealedModule:
    def _module(self) -> types.ModuleType:
        module = types.ModuleType('sealing_test_module')
        module.CLOCK = object()
        module.TIMEOUT = 10
        module.other = 'x'
        module.__annotations__ = {'CLOCK': 'Final[object]'}
        return module

    def test_seals_named_and_final_globals(self) -> None:
        module = seal_module(self._module(), 'TIMEOUT')
        assert isinstance(module, SealedModule)
        assert sealed_names(module) == {'CLOCK', 'TIMEOUT'}

    def test_assignment_refused(self) -> None:
        module = seal_module(self._module())
        with pytest.raises(FinalBindingError):
            module.CLOCK = None
        with pytest.raises(FinalBindingError):
            del module.CLOCK

    def test_unsealed_global_assignable(self) -> None:
        module = seal_module(self._module())
        module.other = 'y'
        assert module.other == 'y'

    def test_resealing_adds_names(self) -> None:
        module = seal_module(self._module())
        seal_module(module, 'other')
        assert sealed_names(module) == {'CLOCK', 'other'}

    def test_unknown_name_rejected_before_sealing(self) -> None:
        module = self._module()
        with pytest.raises(BindingNotFoundError, match='TIMOUT'):
            seal_module(module, 'TIMOUT')
        assert not isinstance(module, SealedModule)

    def test_fake_app_is_sealed_by_name(self) -> None:
        assert isinstance(fake_app, SealedModule)
        assert sealed_names(fake_app) == {'CLOCK', 'TIMEOUT'}
        with pytest.raises(FinalBindingError):
            fake_app.TIMEOUT = 1


class TestSupportsSealing:
    def test_sealed_containers(self) -> None:
        assert supports_sealing(fake_app.PaymentService)
        assert supports_sealing(fake_app)

    def test_plain_containers(self) -> None:
        assert not supports_sealing(fake_app.Settings)
        assert not supports_sealing(types)


class TestModuleExecution:
    """Sealed is created at import time, so everything SealedMeta calls must already exist."""

    def test_executes_top_to_bottom(self) -> None:
        namespace = runpy.run_path(sealing.__file__)
        assert namespace['sealed_names'](namespace['Sealed']) == frozenset()

    def test_sealed_subclass_in_fresh_namespace(self) -> None:
        namespace = runpy.run_path(sealing.__file__)

        class Local(namespace['Sealed']):  # type: ignore[misc]
            LIMIT: Final = 1

        assert namespace['sealed_names'](Local) == {'LIMIT'}
