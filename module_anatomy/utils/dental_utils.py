"""FDI (ISO 3950) tooth notation helpers used by the dental schema and seeds."""

from __future__ import annotations

import re
from typing import Optional, Tuple

from module_anatomy.models.enumerations import Position, ToothType

ELEMENT_ID_PATTERN = re.compile(r"^(?P<type>[A-Za-z]+)_(?P<number>[1-8][1-8])$")

PERMANENT_QUADRANTS = (1, 2, 3, 4)
DECIDUOUS_QUADRANTS = (5, 6, 7, 8)
UPPER_QUADRANTS = (1, 2, 5, 6)


def split_tooth_number(number: int) -> Tuple[int, int]:
    return divmod(int(number), 10)


def is_valid_tooth_number(number: int) -> bool:
    quadrant, index = split_tooth_number(number)
    if quadrant in PERMANENT_QUADRANTS:
        return 1 <= index <= 8
    if quadrant in DECIDUOUS_QUADRANTS:
        return 1 <= index <= 5
    return False


def tooth_type(number: int) -> ToothType:
    quadrant, index = split_tooth_number(number)
    if index in (1, 2):
        return ToothType.INCISOR
    if index == 3:
        return ToothType.CANINE
    if quadrant in PERMANENT_QUADRANTS and index in (4, 5):
        return ToothType.PREMOLAR
    return ToothType.MOLAR


def quadrant_position(number: int) -> Position:
    quadrant, _ = split_tooth_number(number)
    return Position.UPPER if quadrant in UPPER_QUADRANTS else Position.LOWER


def element_id_for(number: int) -> str:
    return f"{tooth_type(number).value}_{int(number)}"


def parse_element_id(element_id: str) -> Optional[Tuple[str, int]]:
    """Return ``(tooth_type, number)`` for ``{ToothType}_{Number}``, or None."""
    match = ELEMENT_ID_PATTERN.match(element_id or "")
    if not match:
        return None
    return match.group("type"), int(match.group("number"))
