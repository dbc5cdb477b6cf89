from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from typing import Dict, Union

from module_anatomy.models.Anatomy import Anatomy, AnatomyQuery
from module_anatomy.models.enumerations import AnatomyFlag
from module_anatomy.schemas.anatomy_data_schema import AnatomyData, DentalAnatomyDataSchema
from module_anatomy.services.anatomy_service import AnatomyService, Conditionals
from module_anatomy.utils.cache_utils import CacheDescriptor
from module_anatomy.utils.dental_utils import element_id_for, parse_element_id, quadrant_position


class DentalAnatomyService(AnatomyService):
    """Teeth and dental regions, identified by FDI numbers in ``element_id``."""

    entity = AnatomyFlag.DENTAL_ANATOMY.value
    data_schema_class = DentalAnatomyDataSchema
    cache_descriptors: Dict[str, CacheDescriptor] = {
        "index": CacheDescriptor(
            name="dental_anatomy",
            tags=frozenset({"dental_anatomy", "dental_anatomy-index"}),
            duration=24 * 60,
        )
    }

    def dental_anatomy(self, conditionals: Conditionals = None) -> AnatomyQuery:
        return self.anatomy(conditionals)

    def prepare_store(self, dto: Union[AnatomyData, Mapping]) -> Anatomy:
        return self.prepare_store_dental_anatomy(dto)

    def prepare_store_dental_anatomy(self, dental_dto: Union[AnatomyData, Mapping]) -> Anatomy:
        """Canonicalise tooth identifiers across the tree, then store it like any anatomy."""
        if isinstance(dental_dto, Mapping):
            dental_dto = self.load_data(dental_dto)
        return self.prepare_store_anatomy(self._canonical(dental_dto))

    def _canonical(self, dto: AnatomyData) -> AnatomyData:
        changes = {"children": [self._canonical(child) for child in dto.children]}
        parsed = parse_element_id(dto.element_id) if dto.element_id else None
        if parsed is not None:
            number = parsed[1]
            changes["element_id"] = element_id_for(number)
            if dto.position is None:
                changes["position"] = quadrant_position(number)
        return replace(dto, **changes)
