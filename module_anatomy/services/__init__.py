from module_anatomy.models.enumerations import AnatomyFlag

from .anatomy_service import AnatomyService
from .dental_anatomy_service import DentalAnatomyService
from .registry import EXTENSION_KEY, FlagRegistry, ServiceBinding, get_registry


def register_default_bindings(registry):
    registry.register(AnatomyFlag.ANATOMY.value, AnatomyService)
    registry.register(AnatomyFlag.DENTAL_ANATOMY.value, DentalAnatomyService)
    return registry


def init_registry(app):
    registry = register_default_bindings(FlagRegistry())
    # fail at boot, not on the first request
    registry.ensure_generic()
    app.extensions[EXTENSION_KEY] = registry
    return registry


__all__ = [
    "AnatomyService",
    "DentalAnatomyService",
    "FlagRegistry",
    "ServiceBinding",
    "get_registry",
    "init_registry",
    "register_default_bindings",
]
