from module_anatomy.routes.v1.anatomy_route import anatomy_bp


def register_blueprints(app):
    prefix = app.config.get('API_PREFIX', '/api/v1')
    app.register_blueprint(anatomy_bp, url_prefix=prefix)
