from collections import defaultdict
from datetime import datetime, timezone

from flask_sqlalchemy.query import Query
from sqlalchemy import Enum as SqlEnum, Index, UniqueConstraint, inspect
from sqlalchemy.orm import selectinload

from ..extensions import db
from module_anatomy.models.enumerations import Position


class AnatomyQuery(Query):
    """Query handle returned by the schema services; nothing runs until consumed."""

    def ordered(self):
        return self.order_by(Anatomy.ordering.asc(), Anatomy.id.asc())

    def roots(self):
        return self.filter(Anatomy.parent_id.is_(None))

    def with_children(self, depth=None):
        # recursion_depth bounds the self-referential eager load
        return self.options(selectinload(Anatomy.children, recursion_depth=depth or 1))

    def with_reference(self):
        return self.execution_options(anatomy_prefetch_references=True)

    def fetch(self):
        """Run the query, honouring ``with_reference()``."""
        rows = self.all()
        if self.get_execution_options().get("anatomy_prefetch_references"):
            prefetch_references(rows)
        return rows


class Anatomy(db.Model):
    __tablename__ = "unicodes"
    __table_args__ = (
        UniqueConstraint("flag", "parent_id", "name", name="uq_unicodes_flag_parent_name"),
        Index("ix_unicodes_flag_parent_ordering", "flag", "parent_id", "ordering"),
        Index("ix_unicodes_element_id", "element_id"),
    )
    query_class = AnatomyQuery

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(255), nullable=False)
    label = db.Column(db.String(255), nullable=True)
    flag = db.Column(db.String(64), nullable=False)

    parent_id = db.Column(
        db.Integer,
        db.ForeignKey("unicodes.id", ondelete="CASCADE"),
        nullable=True,
    )

    # dental only
    element_id = db.Column(db.String(64), nullable=True)
    position = db.Column(
        SqlEnum(
            Position,
            name="unicode_position",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=True,
    )

    ordering = db.Column(db.Integer, nullable=False, default=1)

    reference_type = db.Column(db.String(64), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True)
    service_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    parent = db.relationship(
        "Anatomy",
        remote_side=[id],
        back_populates="children",
    )
    children = db.relationship(
        "Anatomy",
        back_populates="parent",
        order_by=lambda: [Anatomy.ordering, Anatomy.id],
        lazy="select",
    )

    @property
    def reference(self):
        """The referenced record from another subsystem, looked up on demand."""
        if not self.reference_type or self.reference_id is None:
            return None
        prefetched = self.__dict__.get("_prefetched_reference")
        if prefetched is not None and prefetched[0] == (self.reference_type, self.reference_id):
            return prefetched[1]
        model_cls, ident = _reference_identity(self.reference_type, self.reference_id)
        if model_cls is None:
            return None
        return db.session.get(model_cls, ident)

    @reference.setter
    def reference(self, target):
        self.__dict__.pop("_prefetched_reference", None)
        if target is None:
            self.reference_type = None
            self.reference_id = None
            return
        state = inspect(target)
        if not state.identity:
            raise ValueError("reference target must be persisted before it can be referenced")
        self.reference_type = type(target).__name__
        self.reference_id = ":".join(str(part) for part in state.identity)
        self._prefetched_reference = ((self.reference_type, self.reference_id), target)

    @property
    def service(self):
        if self.service_id is None:
            return None
        return {"id": self.service_id}

    def __repr__(self):
        return f"<Anatomy id={self.id} flag={self.flag} name={self.name!r}>"


def _reference_model(type_name):
    for mapper in db.Model.registry.mappers:
        cls = mapper.class_
        if cls.__name__ == type_name or getattr(cls, "__tablename__", None) == type_name:
            return mapper
    return None


def _reference_identity(type_name, raw_id):
    mapper = _reference_model(type_name)
    if mapper is None:
        return None, None
    column = mapper.primary_key[0]
    try:
        ident = column.type.python_type(raw_id)
    except (NotImplementedError, TypeError, ValueError):
        ident = raw_id
    return mapper.class_, ident


def prefetch_references(entities):
    """Load every referenced record in one query per type and pin it on its entity.

    Returns ``{(reference_type, reference_id): target}``; targets that no longer
    exist map to ``None`` so ``reference`` does not query for them again.
    """
    wanted = defaultdict(dict)
    for entity in entities:
        if entity.reference_type and entity.reference_id is not None:
            model_cls, ident = _reference_identity(entity.reference_type, entity.reference_id)
            if model_cls is not None:
                wanted[model_cls].setdefault(ident, []).append(entity)

    found = {}
    for model_cls, by_ident in wanted.items():
        pk = inspect(model_cls).primary_key[0]
        loaded = db.session.query(model_cls).filter(pk.in_(list(by_ident))).all()
        targets = {inspect(target).identity[0]: target for target in loaded}
        for ident, owners in by_ident.items():
            target = targets.get(ident)
            for entity in owners:
                key = (entity.reference_type, entity.reference_id)
                entity._prefetched_reference = (key, target)
                found[key] = target
    return found
