from flask import Flask


def register_blueprints(app: Flask) -> None:
    from dbstatus.web.api import api_bp
    from dbstatus.web.events import events_bp
    from dbstatus.web.views import views_bp

    app.register_blueprint(views_bp)
    app.register_blueprint(events_bp)
    app.register_blueprint(api_bp, url_prefix="/api")
