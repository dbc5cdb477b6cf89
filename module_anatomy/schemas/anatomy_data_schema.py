from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from typing import Any, ClassVar, Dict, List, Optional

from marshmallow import EXCLUDE, Schema, ValidationError, fields, post_load, pre_load, validate, validates_schema

from module_anatomy.models.enumerations import AnatomyFlag, Position
from module_anatomy.utils.dental_utils import (
    is_valid_tooth_number,
    parse_element_id,
    quadrant_position,
    tooth_type,
)


@dataclass
class AnatomyData:
    """Validated input for one node of an anatomy subtree."""

    default_flag: ClassVar[str] = AnatomyFlag.ANATOMY.value

    name: str
    flag: Optional[str] = None
    label: Optional[str] = None
    id: Optional[int] = None
    parent_id: Optional[int] = None
    ordering: Optional[int] = None
    element_id: Optional[str] = None
    position: Optional[Position] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    service_id: Optional[str] = None
    children: List["AnatomyData"] = field(default_factory=list)

    def __post_init__(self):
        # DTOs built in code get the same default as loaded ones
        if not self.flag:
            self.flag = self.default_flag
        if not self.label:
            self.label = self.name

    def column_values(self) -> Dict[str, Any]:
        """Attributes that map onto ``unicodes`` columns, without identity or tree links."""
        values = asdict(self)
        for key in ("id", "parent_id", "children"):
            values.pop(key)
        values["position"] = self.position
        return values


@dataclass
class DentalAnatomyData(AnatomyData):
    default_flag: ClassVar[str] = AnatomyFlag.DENTAL_ANATOMY.value


class AnatomyDataSchema(Schema):
    """Loads an anatomy node (and its nested children) into :class:`AnatomyData`."""

    default_flag = AnatomyFlag.ANATOMY.value
    data_class = AnatomyData

    class Meta:
        unknown = EXCLUDE

    id = fields.Integer(load_default=None, allow_none=True)
    name = fields.String(required=True, validate=validate.Length(min=1, max=255))
    label = fields.String(load_default=None, allow_none=True, validate=validate.Length(max=255))
    flag = fields.String(load_default=None, allow_none=True, validate=validate.Length(min=1, max=64))
    parent_id = fields.Integer(load_default=None, allow_none=True)
    ordering = fields.Integer(load_default=None, allow_none=True, validate=validate.Range(min=0))
    element_id = fields.String(load_default=None, allow_none=True, validate=validate.Length(max=64))
    position = fields.Enum(Position, by_value=True, load_default=None, allow_none=True)
    reference_type = fields.String(load_default=None, allow_none=True, validate=validate.Length(max=64))
    reference_id = fields.String(load_default=None, allow_none=True, validate=validate.Length(max=64))
    service_id = fields.String(load_default=None, allow_none=True, validate=validate.Length(max=64))
    children = fields.List(fields.Nested(lambda: AnatomyDataSchema()), load_default=list)

    @pre_load
    def normalize_input(self, data, **kwargs):
        if not isinstance(data, Mapping):
            return data
        data = dict(data)
        for key in ("name", "label", "flag", "element_id"):
            if isinstance(data.get(key), str):
                data[key] = data[key].strip() or None
        for key in ("reference_id", "service_id"):
            if isinstance(data.get(key), int) and not isinstance(data.get(key), bool):
                data[key] = str(data[key])
        if isinstance(data.get("position"), str):
            data["position"] = data["position"].strip().lower()
        if data.get("children") is None:
            data.pop("children", None)
        return data

    @post_load
    def make_data(self, data, **kwargs):
        data["flag"] = data.get("flag") or self.default_flag
        data["label"] = data.get("label") or data["name"]
        return self.data_class(**data)


class DentalAnatomyDataSchema(AnatomyDataSchema):
    """Dental variant: defaults to ``DentalAnatomy`` and checks FDI tooth identifiers."""

    default_flag = AnatomyFlag.DENTAL_ANATOMY.value
    data_class = DentalAnatomyData

    children = fields.List(fields.Nested(lambda: DentalAnatomyDataSchema()), load_default=list)

    @validates_schema
    def validate_tooth(self, data, **kwargs):
        element_id = data.get("element_id")
        if element_id is None:
            return
        parsed = parse_element_id(element_id)
        if parsed is None:
            raise ValidationError("Must look like {ToothType}_{Number}, e.g. Molar_18.", "element_id")
        type_name, number = parsed
        if not is_valid_tooth_number(number):
            raise ValidationError(f"{number} is not an FDI tooth number.", "element_id")
        expected = tooth_type(number).value
        if type_name.lower() != expected.lower():
            raise ValidationError(f"Tooth {number} is a {expected}, not a {type_name}.", "element_id")
        position = data.get("position")
        if position is not None and position != quadrant_position(number):
            raise ValidationError(
                f"Tooth {number} sits in the {quadrant_position(number).value} jaw.", "position"
            )
