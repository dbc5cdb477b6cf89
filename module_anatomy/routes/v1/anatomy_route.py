from flask import Blueprint, current_app, jsonify, request

from module_anatomy.exceptions import (
    AnatomyPersistenceError,
    AnatomyQueryError,
    AnatomyValidationError,
)
from module_anatomy.models.Anatomy import Anatomy
from module_anatomy.services.registry import get_registry

anatomy_bp = Blueprint('anatomy_bp', __name__)

# query-string keys that are not column filters
_RESERVED_ARGS = {'flag', 'flatten', 'page', 'per_page'}
_TRUE_VALUES = {'1', 'true', 'yes', 'on'}


def _flatten_arg(default):
    raw = request.args.get('flatten')
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _list_conditionals():
    conditionals = {}
    for key in request.args:
        if key in _RESERVED_ARGS:
            continue
        values = request.args.getlist(key)
        conditionals[key] = values if len(values) > 1 else values[0]
    return conditionals


@anatomy_bp.errorhandler(AnatomyValidationError)
def _validation_error(e):
    return jsonify({"error": "validation_error", **e.to_dict()}), 400


@anatomy_bp.errorhandler(AnatomyQueryError)
def _query_error(e):
    return jsonify({"error": "query_error", **e.to_dict()}), 400


@anatomy_bp.errorhandler(AnatomyPersistenceError)
def _persistence_error(e):
    return jsonify({"error": "persistence_error", **e.to_dict()}), 409


@anatomy_bp.route('/anatomies', methods=['GET'])
def list_anatomies():
    """List anatomy records for a flag (roots only unless filters are given).

    ``page`` switches to a live, paginated envelope.
    """
    flag = request.args.get('flag') or Anatomy.__name__
    binding, effective_flag = get_registry().resolve(flag)
    conditionals = _list_conditionals()
    if flag != effective_flag:
        # unbound flags still list their own rows through the generic service
        conditionals['flag'] = flag
    service = binding.service()
    if 'page' in request.args:
        page = request.args.get('page', 1, type=int) or 1
        per_page = request.args.get('per_page', 50, type=int) or 50
        data = service.view_anatomy_paginate(conditionals, page=page, per_page=per_page, flatten=_flatten_arg(True))
    else:
        data = service.view_anatomy_list(conditionals, flatten=_flatten_arg(True))
    return jsonify(data), 200


@anatomy_bp.route('/anatomies/<int:anatomy_id>', methods=['GET'])
def get_anatomy(anatomy_id):
    """Get a single anatomy record, children included unless flatten is set."""
    binding = get_registry().ensure_generic()
    data = binding.service().show_anatomy(anatomy_id, flatten=_flatten_arg(False))
    if data is None:
        return jsonify({"error": "not_found", "id": anatomy_id}), 404
    return jsonify(data), 200


@anatomy_bp.route('/anatomies', methods=['POST'])
def create_anatomy():
    """Store an anatomy subtree through the service bound to its flag."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "validation_error", "message": "Request body must be a JSON object"}), 400

    binding, effective_flag = get_registry().resolve(data.get('flag'))
    service = binding.service()
    entity = service.prepare_store(service.load_data(data))
    current_app.logger.info("anatomy stored id=%s flag=%s via %s", entity.id, entity.flag, effective_flag)
    return jsonify(service.show_anatomy(entity.id, flatten=False)), 201
