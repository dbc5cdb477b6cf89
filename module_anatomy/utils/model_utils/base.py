from __future__ import annotations

from typing import Any, Dict, Optional, Type, TypeVar

from sqlalchemy import inspect

from module_anatomy.extensions import db
from module_anatomy.utils.logging_utils import get_logger, log_context

ModelType = TypeVar("ModelType", bound=db.Model)


def _serialize_value(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def _instance_identity(instance: ModelType) -> Optional[str]:
    state = inspect(instance)
    if state.identity:
        return ":".join(str(_serialize_value(part)) for part in state.identity)
    value = getattr(instance, "id", None)
    return str(value) if value is not None else None


def _payload(attributes: Dict[str, Any]) -> Dict[str, Any]:
    return {key: _serialize_value(value) for key, value in attributes.items()}


def create_instance(
    model_cls: Type[ModelType],
    commit: bool = True,
    flush: bool = False,
    *,
    context: Optional[Dict[str, Any]] = None,
    **attributes: Any,
) -> ModelType:
    """
    Generic helper to create and optionally persist a new model instance.
    """

    logger = get_logger("model_utils")
    with log_context(model=model_cls.__name__, action="create", **(context or {})):
        logger.debug("Creating %s commit=%s flush=%s attributes=%s", model_cls.__name__, commit, flush, _payload(attributes))
        try:
            instance = model_cls(**attributes)
            db.session.add(instance)

            if flush:
                db.session.flush()

            if commit:
                db.session.commit()

            logger.debug("Created %s target_id=%s", model_cls.__name__, _instance_identity(instance))
            return instance
        except Exception:
            logger.exception("Failed to create %s attributes=%s", model_cls.__name__, _payload(attributes))
            raise


def get_instance(
    model_cls: Type[ModelType],
    instance_id: Any,
    *,
    context: Optional[Dict[str, Any]] = None,
) -> Optional[ModelType]:
    """
    Fetch a single model instance by primary key.
    """

    logger = get_logger("model_utils")
    with log_context(model=model_cls.__name__, action="get", **(context or {})):
        instance = db.session.get(model_cls, instance_id) if instance_id is not None else None
        logger.debug("Fetched %s id=%s found=%s", model_cls.__name__, instance_id, instance is not None)
        return instance


def update_instance(
    instance: ModelType,
    commit: bool = True,
    flush: bool = False,
    *,
    context: Optional[Dict[str, Any]] = None,
    **attributes: Any,
) -> ModelType:
    """
    Update attributes on an instance. Attributes with value ``None`` are
    respected; callers should pre-filter if they need to skip ``None`` values.
    """

    logger = get_logger("model_utils")
    model_name = instance.__class__.__name__
    with log_context(model=model_name, action="update", **(context or {})):
        changed = {
            key: value
            for key, value in attributes.items()
            if getattr(instance, key, None) != value
        }
        logger.debug("Updating %s target_id=%s changed=%s", model_name, _instance_identity(instance), _payload(changed))
        try:
            for key, value in changed.items():
                setattr(instance, key, value)

            if flush:
                db.session.flush()

            if commit:
                db.session.commit()

            return instance
        except Exception:
            logger.exception("Failed to update %s target_id=%s", model_name, _instance_identity(instance))
            raise
