"""
Flag → schema service bindings.

The table is filled once at app start (see :func:`module_anatomy.services.init_registry`)
and lives on ``app.extensions["anatomy_registry"]``. Lookups never fail: a flag
without a usable binding resolves to the generic ``Anatomy`` binding.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Type

from flask import current_app

from module_anatomy.models.enumerations import AnatomyFlag
from module_anatomy.schemas.anatomy_data_schema import AnatomyDataSchema
from module_anatomy.services.anatomy_service import AnatomyService
from module_anatomy.utils.logging_utils import get_logger

EXTENSION_KEY = "anatomy_registry"


@dataclass(frozen=True)
class ServiceBinding:
    flag: str
    service_class: Type
    data_schema_class: Type[AnatomyDataSchema]

    def service(self, **kwargs) -> AnatomyService:
        return self.service_class(**kwargs)

    def data_schema(self) -> AnatomyDataSchema:
        return self.data_schema_class()


class FlagRegistry:
    GENERIC_FLAG = AnatomyFlag.ANATOMY.value

    def __init__(self) -> None:
        self._bindings: Dict[str, ServiceBinding] = {}

    def register(self, flag: str, service_class: Type, data_schema_class: Optional[Type] = None) -> ServiceBinding:
        binding = ServiceBinding(
            flag=flag,
            service_class=service_class,
            data_schema_class=data_schema_class or getattr(service_class, "data_schema_class", AnatomyDataSchema),
        )
        self._bindings[flag] = binding
        get_logger("registry").debug("registered flag=%s service=%s", flag, service_class.__name__)
        return binding

    def get(self, flag: str) -> Optional[ServiceBinding]:
        return self._bindings.get(flag)

    def flags(self):
        return sorted(self._bindings)

    def ensure_generic(self) -> ServiceBinding:
        binding = self._bindings.get(self.GENERIC_FLAG)
        if binding is None:
            raise RuntimeError(f"No binding registered for the generic '{self.GENERIC_FLAG}' flag")
        return binding

    def resolve(self, flag: Optional[str]) -> Tuple[ServiceBinding, str]:
        """Return ``(binding, effective_flag)`` for ``flag``."""
        binding = self._bindings.get(flag) if flag else None
        if binding is not None and _is_anatomy_capable(binding):
            return binding, flag

        generic = self.ensure_generic()
        if binding is None:
            reason = "no binding"
        else:
            reason = f"{binding.service_class.__name__} is not an AnatomyService"
        get_logger("registry").info(
            "flag=%s falls back to %s (%s)", flag, self.GENERIC_FLAG, reason
        )
        return generic, self.GENERIC_FLAG


def _is_anatomy_capable(binding: ServiceBinding) -> bool:
    return isinstance(binding.service_class, type) and issubclass(binding.service_class, AnatomyService)


def get_registry() -> FlagRegistry:
    return current_app.extensions[EXTENSION_KEY]
