from quart import Quart
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException
import logging

load_dotenv()


def create_app(services=None):
    from verifyguard.settings import settings
    from .services.container import (
        LIFECYCLE_EXTENSION_KEY,
        SERVICES_EXTENSION_KEY,
        AppLifecycle,
        AppServices,
    )
    from .routes.helpers import error_response, json_response

    if services is None:
        services = AppServices.create(settings)

    lifecycle = AppLifecycle(services)

    app = Quart(__name__)
    app.config["APP_NAME"] = settings.get("APP_NAME")

    logging.basicConfig(
        level=str(settings.get("LOG_LEVEL") or "INFO").upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    app.extensions[SERVICES_EXTENSION_KEY] = services
    app.extensions[LIFECYCLE_EXTENSION_KEY] = lifecycle

    from .routes.verify import verify_bp
    from .routes.admin import admin_bp

    app.register_blueprint(verify_bp)
    app.register_blueprint(admin_bp)

    @app.get("/health")
    async def health():
        return json_response({"status": "ok"})

    @app.before_serving
    async def _start_lifecycle() -> None:
        await lifecycle.start()

    @app.after_serving
    async def _stop_lifecycle() -> None:
        await lifecycle.stop()

    @app.errorhandler(HTTPException)
    async def handle_http_exception(e):
        message = getattr(e, "description", None) or e.name
        return error_response(message, e.code or 500)

    @app.errorhandler(Exception)
    async def handle_exception(e):
        app.logger.exception("Unhandled exception: %s", e)
        return error_response(
            "An unexpected error occurred. Please try again later.", 500
        )

    app.logger.info("Application initialized")
    return app
