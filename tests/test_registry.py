import pytest

from module_anatomy import create_app
from module_anatomy.schemas import AnatomyDataSchema, DentalAnatomyDataSchema
from module_anatomy.services import AnatomyService, DentalAnatomyService, FlagRegistry, register_default_bindings


class NotAnAnatomyService:
    """Looks like a service but does not provide the Anatomy operations."""


class TestFlagRegistry:
    """Flag → service binding resolution."""

    def test_unbound_flag_falls_back_to_generic(self, registry):
        binding, effective_flag = registry.resolve('HeadToToe')
        assert binding.service_class is AnatomyService
        assert effective_flag == 'Anatomy'

    def test_arbitrary_flags_fall_back(self, registry):
        for flag in ('Cardiology', 'anatomy', '', None):
            binding, effective_flag = registry.resolve(flag)
            assert binding.service_class is AnatomyService
            assert effective_flag == 'Anatomy'

    def test_bound_flag_resolves_unchanged(self, registry):
        binding, effective_flag = registry.resolve('DentalAnatomy')
        assert binding.service_class is DentalAnatomyService
        assert binding.data_schema_class is DentalAnatomyDataSchema
        assert effective_flag == 'DentalAnatomy'

    def test_generic_flag_resolves_to_itself(self, registry):
        binding, effective_flag = registry.resolve('Anatomy')
        assert binding.service_class is AnatomyService
        assert binding.data_schema_class is AnatomyDataSchema
        assert effective_flag == 'Anatomy'

    def test_incapable_binding_falls_back(self, app):
        registry = register_default_bindings(FlagRegistry())
        registry.register('Broken', NotAnAnatomyService, AnatomyDataSchema)

        binding, effective_flag = registry.resolve('Broken')
        assert binding.service_class is AnatomyService
        assert effective_flag == 'Anatomy'

    def test_missing_generic_binding_is_an_error(self, app):
        with pytest.raises(RuntimeError):
            FlagRegistry().resolve('Anatomy')

    def test_binding_builds_service_and_schema(self, registry):
        binding, _ = registry.resolve('DentalAnatomy')
        assert isinstance(binding.service(max_depth=3), DentalAnatomyService)
        assert binding.service(max_depth=3).max_depth == 3
        assert isinstance(binding.data_schema(), DentalAnatomyDataSchema)

    def test_app_without_generic_binding_fails_to_start(self, app, monkeypatch):
        import module_anatomy.services

        monkeypatch.setattr(module_anatomy.services, 'register_default_bindings', lambda registry: registry)
        with pytest.raises(RuntimeError):
            create_app('testing')
