from .Anatomy import Anatomy, AnatomyQuery, prefetch_references
from .enumerations import AnatomyFlag, Position, ToothType

__all__ = [
    'Anatomy',
    'AnatomyQuery',
    'AnatomyFlag',
    'Position',
    'ToothType',
    'prefetch_references',
]
