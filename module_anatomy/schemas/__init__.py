# schemas/__init__.py

from .anatomy_data_schema import (
    AnatomyData,
    AnatomyDataSchema,
    DentalAnatomyData,
    DentalAnatomyDataSchema,
)
from .anatomy_schema import AnatomySchema, shape_anatomies, shape_anatomy

__all__ = [
    'AnatomyData',
    'AnatomyDataSchema',
    'DentalAnatomyData',
    'DentalAnatomyDataSchema',
    'AnatomySchema',
    'shape_anatomy',
    'shape_anatomies',
]
