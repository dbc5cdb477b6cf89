from enum import Enum
# enums.py


class AnatomyFlag(str, Enum):
    ANATOMY = 'Anatomy'
    HEAD_TO_TOE = 'HeadToToe'
    DENTAL_ANATOMY = 'DentalAnatomy'


class Position(str, Enum):
    UPPER = 'upper'
    LOWER = 'lower'


class ToothType(str, Enum):
    INCISOR = 'Incisor'
    CANINE = 'Canine'
    PREMOLAR = 'Premolar'
    MOLAR = 'Molar'
