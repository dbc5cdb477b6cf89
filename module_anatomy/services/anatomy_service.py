from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from marshmallow import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from module_anatomy.config import anatomy_max_depth
from module_anatomy.exceptions import (
    AnatomyError,
    AnatomyPersistenceError,
    AnatomyQueryError,
    AnatomyValidationError,
)
from module_anatomy.extensions import db
from module_anatomy.models.Anatomy import Anatomy, AnatomyQuery
from module_anatomy.models.enumerations import AnatomyFlag, Position
from module_anatomy.schemas.anatomy_data_schema import AnatomyData, AnatomyDataSchema
from module_anatomy.schemas.anatomy_schema import shape_anatomies, shape_anatomy
from module_anatomy.utils.cache_utils import CacheDescriptor, TaggedCache, flag_tag
from module_anatomy.utils.logging_utils import get_logger, log_context
from module_anatomy.utils.model_utils import create_instance, get_instance, update_instance

Conditionals = Union[None, Mapping, Iterable, Any]

_FILTERABLE_COLUMNS = frozenset(
    column.key for column in Anatomy.__table__.columns  # type: ignore[attr-defined]
)


class AnatomyService:
    """
    Business façade for the generic ``Anatomy`` flag.

    Every write goes through :meth:`prepare_store_anatomy` so the cache tags of
    the flags it touched are flushed after the commit. Specialised flags
    subclass this service, narrow the query scope and add their own input
    normalisation, then hand over to the same store path.
    """

    entity = AnatomyFlag.ANATOMY.value
    data_schema_class = AnatomyDataSchema
    cache_descriptors: Dict[str, CacheDescriptor] = {
        "index": CacheDescriptor(
            name="anatomy",
            tags=frozenset({"anatomy", "anatomy-index"}),
            duration=24 * 60,
        )
    }

    def __init__(self, *, max_depth: Optional[int] = None, cache: Optional[TaggedCache] = None) -> None:
        self.max_depth = max_depth or anatomy_max_depth()
        self.cache = cache or TaggedCache()
        self.anatomy_model: Optional[Anatomy] = None

    @property
    def logger(self):
        return get_logger("anatomy")

    # ------------------------------------------------------------------
    # DTO
    # ------------------------------------------------------------------
    def load_data(self, payload: Mapping) -> AnatomyData:
        """Validate a raw mapping into this flag's DTO, children included."""
        self._check_payload_depth(payload)
        try:
            return self.data_schema_class().load(payload)
        except ValidationError as exc:
            name = payload.get("name") if isinstance(payload, Mapping) else None
            flag = (payload.get("flag") if isinstance(payload, Mapping) else None) or self.entity
            raise AnatomyValidationError(
                "Invalid anatomy data",
                messages=exc.messages,
                flag=flag,
                name=name,
                path=(name,) if name else (),
            ) from exc

    def _check_payload_depth(self, payload: Any) -> None:
        """Reject over-deep ``children`` nesting before the schema recurses into it."""
        stack = [(payload, 1, ())]
        while stack:
            node, depth, path = stack.pop()
            if not isinstance(node, Mapping):
                continue
            name = node.get("name")
            path = path + (str(name),) if name else path
            if depth > self.max_depth:
                raise AnatomyValidationError(
                    f"Anatomy tree is deeper than {self.max_depth} levels",
                    messages={"children": ["Maximum depth exceeded."]},
                    flag=(payload.get("flag") if isinstance(payload, Mapping) else None) or self.entity,
                    name=name,
                    path=path,
                )
            children = node.get("children")
            if isinstance(children, list):
                stack.extend((child, depth + 1, path) for child in children)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def anatomy(self, conditionals: Conditionals = None) -> AnatomyQuery:
        """Flag-scoped query; a ``flag`` key in ``conditionals`` replaces the scope."""
        scope = self.entity
        if isinstance(conditionals, Mapping) and conditionals.get("flag"):
            scope = conditionals["flag"]
        query = Anatomy.query.filter(Anatomy.flag == scope)
        return self._apply_conditionals(query, conditionals)

    def view_anatomy_list(self, conditionals: Conditionals = None, flatten: bool = True) -> List[Dict[str, Any]]:
        """Shaped, cached list. Without conditionals only root records are listed.

        Only mapping conditionals can be part of a cache key; clause lists and
        callables are always read live.
        """
        cacheable = conditionals is None or isinstance(conditionals, Mapping)
        if cacheable:
            conditionals = dict(conditionals or {})
        scope = (conditionals.get("flag") if cacheable else None) or self.entity

        def _produce():
            query = self.anatomy(conditionals)
            if cacheable and (not conditionals or set(conditionals) == {"flag"}):
                query = query.roots()
            query = query.ordered().with_reference()
            if not flatten:
                query = query.with_children(self.max_depth)
            return shape_anatomies(query.fetch(), flatten=flatten)

        if not cacheable:
            return _produce()

        descriptor = self.cache_descriptors["index"]
        return self.cache.remember(
            descriptor,
            {"scope": scope, "conditionals": conditionals, "flatten": flatten},
            _produce,
            extra_tags=(flag_tag(scope),),
        )

    def view_anatomy_paginate(
        self, conditionals: Optional[Mapping] = None, page: int = 1, per_page: int = 50, flatten: bool = True
    ) -> Dict[str, Any]:
        """Live, page-sized variant of :meth:`view_anatomy_list`."""
        page = max(int(page), 1)
        per_page = max(min(int(per_page), 500), 1)
        conditionals = dict(conditionals or {})
        query = self.anatomy(conditionals)
        if set(conditionals) <= {"flag"}:
            query = query.roots()
        total = query.count()
        rows = query.ordered().offset((page - 1) * per_page).limit(per_page).with_reference().fetch()
        return {
            "data": shape_anatomies(rows, flatten=flatten),
            "pagination": {"total": total, "page": page, "per_page": per_page},
        }

    def show_anatomy(self, anatomy_id: Any, flatten: bool = False) -> Optional[Dict[str, Any]]:
        """Point reads are always live."""
        entity = get_instance(Anatomy, anatomy_id, context={"flag": self.entity})
        return shape_anatomy(entity, flatten=flatten)

    def _apply_conditionals(self, query: AnatomyQuery, conditionals: Conditionals) -> AnatomyQuery:
        if conditionals is None:
            return query
        if callable(conditionals):
            return conditionals(query)
        if isinstance(conditionals, Mapping):
            for key, value in conditionals.items():
                if key == "flag":
                    continue
                if key not in _FILTERABLE_COLUMNS:
                    raise AnatomyQueryError(f"Unknown anatomy column '{key}'", flag=self.entity)
                column = getattr(Anatomy, key)
                if isinstance(value, (list, tuple, set, frozenset)):
                    query = query.filter(column.in_([self._coerce(key, v) for v in value]))
                elif value is None:
                    query = query.filter(column.is_(None))
                else:
                    query = query.filter(column == self._coerce(key, value))
            return query
        if isinstance(conditionals, Iterable) and not isinstance(conditionals, (str, bytes)):
            for clause in conditionals:
                query = query.filter(clause)
            return query
        raise AnatomyQueryError(f"Unsupported conditionals type {type(conditionals).__name__}", flag=self.entity)

    def _coerce(self, key: str, value: Any) -> Any:
        if key == "position" and not isinstance(value, Position):
            try:
                return Position(str(value).strip().lower())
            except ValueError as exc:
                raise AnatomyQueryError(f"Unknown position '{value}'", flag=self.entity) from exc
        if key in ("id", "parent_id", "ordering") and isinstance(value, str):
            try:
                return int(value)
            except ValueError as exc:
                raise AnatomyQueryError(f"'{key}' must be an integer", flag=self.entity) from exc
        return value

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------
    def prepare_store(self, dto: Union[AnatomyData, Mapping]) -> Anatomy:
        """Generic store entrypoint used by the seeder and the HTTP layer."""
        return self.prepare_store_anatomy(dto)

    def prepare_store_anatomy(self, anatomy_dto: Union[AnatomyData, Mapping]) -> Anatomy:
        """
        Upsert ``anatomy_dto`` and its whole ``children`` tree in one
        transaction, then flush the cache tags of every flag written.
        """
        if isinstance(anatomy_dto, Mapping):
            anatomy_dto = self.load_data(anatomy_dto)

        written_flags: Set[str] = set()
        with log_context(flag=anatomy_dto.flag, anatomy=anatomy_dto.name):
            self.logger.info("prepare_store_anatomy flag=%s name=%s", anatomy_dto.flag, anatomy_dto.name)
            try:
                parent = self._resolve_parent(anatomy_dto)
                entity = self._store_node(
                    anatomy_dto,
                    parent=parent,
                    depth=1,
                    path=(anatomy_dto.name,),
                    default_ordering=anatomy_dto.ordering or 1,
                    written_flags=written_flags,
                )
                db.session.commit()
            except AnatomyError:
                db.session.rollback()
                raise
            except SQLAlchemyError as exc:
                db.session.rollback()
                self.logger.exception("prepare_store_anatomy failed flag=%s name=%s", anatomy_dto.flag, anatomy_dto.name)
                raise AnatomyPersistenceError(
                    f"Could not store anatomy: {exc.__class__.__name__}",
                    flag=anatomy_dto.flag,
                    name=anatomy_dto.name,
                    path=(anatomy_dto.name,),
                ) from exc

            self._invalidate_cache(written_flags)
            self.logger.info("prepare_store_anatomy complete id=%s flags=%s", entity.id, sorted(written_flags))
        self.anatomy_model = entity
        return entity

    def _resolve_parent(self, dto: AnatomyData) -> Optional[Anatomy]:
        if dto.parent_id is None:
            return None
        parent = get_instance(Anatomy, dto.parent_id)
        if parent is None:
            raise AnatomyValidationError(
                f"Parent anatomy {dto.parent_id} does not exist",
                messages={"parent_id": ["Unknown parent."]},
                flag=dto.flag,
                name=dto.name,
                path=(dto.name,),
            )
        return parent

    def _find_existing(self, dto: AnatomyData, parent_id: Optional[int], path: Tuple[str, ...]) -> Optional[Anatomy]:
        if dto.id is not None:
            entity = get_instance(Anatomy, dto.id)
            if entity is None:
                raise AnatomyValidationError(
                    f"Anatomy {dto.id} does not exist",
                    messages={"id": ["Unknown anatomy."]},
                    flag=dto.flag,
                    name=dto.name,
                    path=path,
                )
            return entity
        query = Anatomy.query.filter(Anatomy.flag == dto.flag, Anatomy.name == dto.name)
        if parent_id is None:
            query = query.filter(Anatomy.parent_id.is_(None))
        else:
            query = query.filter(Anatomy.parent_id == parent_id)
        return query.order_by(Anatomy.id.asc()).first()

    def _store_node(
        self,
        dto: AnatomyData,
        *,
        parent: Optional[Anatomy],
        depth: int,
        path: Tuple[str, ...],
        default_ordering: int,
        written_flags: Set[str],
    ) -> Anatomy:
        if depth > self.max_depth:
            raise AnatomyValidationError(
                f"Anatomy tree is deeper than {self.max_depth} levels",
                messages={"children": ["Maximum depth exceeded."]},
                flag=dto.flag,
                name=dto.name,
                path=path,
            )

        parent_id = parent.id if parent is not None else None
        values = dto.column_values()
        values["ordering"] = dto.ordering if dto.ordering is not None else default_ordering
        values["parent_id"] = parent_id

        entity = self._find_existing(dto, parent_id, path)
        context = {"flag": dto.flag, "depth": depth}
        if entity is None:
            entity = create_instance(Anatomy, commit=False, flush=True, context=context, **values)
        else:
            # keep what the caller did not send
            updates = {key: value for key, value in values.items() if value is not None}
            entity = update_instance(entity, commit=False, flush=True, context=context, **updates)
        written_flags.add(entity.flag)

        for index, child in enumerate(dto.children, start=1):
            self._store_node(
                child,
                parent=entity,
                depth=depth + 1,
                path=path + (child.name,),
                default_ordering=index,
                written_flags=written_flags,
            )
        return entity

    def _invalidate_cache(self, written_flags: Set[str]) -> None:
        tags: Set[str] = set()
        for descriptor in self.cache_descriptors.values():
            tags.update(descriptor.tags)
        tags.update(flag_tag(flag) for flag in written_flags)
        self.cache.flush(tags)
