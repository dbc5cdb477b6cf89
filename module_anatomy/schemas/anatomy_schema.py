from marshmallow import fields, post_dump

from module_anatomy.config import anatomy_max_depth
from module_anatomy.extensions import ma
from module_anatomy.models.Anatomy import Anatomy


class AnatomySchema(ma.SQLAlchemySchema):
    """External view of an anatomy record.

    ``flatten=True`` gives the lightweight list view (record + reference only).
    ``flatten=False`` adds ``children`` recursively, and ``service`` when set.
    """

    class Meta:
        model = Anatomy

    id = ma.auto_field(dump_only=True)
    name = ma.auto_field()
    label = ma.auto_field()
    flag = ma.auto_field()
    parent_id = ma.auto_field()
    element_id = ma.auto_field()
    position = fields.Method("get_position", dump_only=True)
    ordering = ma.auto_field()
    reference = fields.Method("get_reference", dump_only=True)
    service = fields.Method("get_service", dump_only=True)
    children = fields.Method("get_children", dump_only=True)

    def __init__(self, *args, flatten=True, depth=1, max_depth=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.flatten = flatten
        self.depth = depth
        self.max_depth = max_depth or anatomy_max_depth()

    def get_position(self, obj):
        return obj.position.value if obj.position is not None else None

    def get_reference(self, obj):
        if not obj.reference_type:
            return None
        target = obj.reference
        return {
            "type": obj.reference_type,
            "id": obj.reference_id,
            "name": getattr(target, "name", None),
        }

    def get_service(self, obj):
        return obj.service

    def get_children(self, obj):
        if self.flatten or self.depth >= self.max_depth:
            return []
        nested = AnatomySchema(
            many=True,
            flatten=False,
            depth=self.depth + 1,
            max_depth=self.max_depth,
        )
        return nested.dump(obj.children)

    @post_dump
    def drop_relations(self, data, **kwargs):
        if self.flatten:
            data.pop("children", None)
            data.pop("service", None)
        elif data.get("service") is None:
            data.pop("service", None)
        return data


def shape_anatomy(entity, flatten=True):
    """Shape one record for callers; ``None`` passes through."""
    if entity is None:
        return None
    return AnatomySchema(flatten=flatten).dump(entity)


def shape_anatomies(entities, flatten=True):
    return AnatomySchema(many=True, flatten=flatten).dump(entities)
