"""Routes package for the chama disputes service."""


def register_routes(app):
    """Register all route blueprints with the application."""
    from .disputes import disputes_bp
    from .admin import admin_bp
    from .notifications import notifications_bp
    from .push import push_bp

    app.register_blueprint(disputes_bp, url_prefix='/api/disputes')
    app.register_blueprint(admin_bp, url_prefix='/api/admin/disputes')
    app.register_blueprint(notifications_bp, url_prefix='/api/notifications')
    app.register_blueprint(push_bp, url_prefix='/api/push')
