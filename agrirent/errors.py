from flask import jsonify
from sqlalchemy.exc import IntegrityError, SQLAlchemyError


class AppError(Exception):
    status_code = 400
    code = "bad_request"

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidInterval(AppError):
    status_code = 400
    code = "invalid_interval"


class EquipmentUnavailable(AppError):
    status_code = 409
    code = "equipment_unavailable"


class NotFound(AppError):
    status_code = 404
    code = "not_found"


class Forbidden(AppError):
    status_code = 403
    code = "forbidden"

    def __init__(self, message="Forbidden."):
        super().__init__(message)


class InvalidTransition(AppError):
    status_code = 409
    code = "invalid_transition"


class AlreadyRated(AppError):
    status_code = 409
    code = "already_rated"


class AlreadyReviewed(AppError):
    status_code = 409
    code = "already_reviewed"


class Conflict(AppError):
    status_code = 409
    code = "conflict"


class Timeout(AppError):
    status_code = 503
    code = "timeout"


class StorageFailure(AppError):
    """Storage layer failed; the caller should retry the whole operation."""

    status_code = 503
    code = "storage_failure"


def register_error_handlers(app):
    @app.errorhandler(AppError)
    def handle_app_error(err):
        if err.status_code >= 500:
            app.logger.warning("%s: %s", type(err).__name__, err.message)
        return jsonify({"error": err.message, "code": err.code}), err.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(_err):
        app.logger.warning("Database integrity error")
        return jsonify({"error": "Conflict. Resource already exists.", "code": Conflict.code}), 409

    @app.errorhandler(SQLAlchemyError)
    def handle_storage_error(err):
        app.logger.exception("Storage failure: %s", err)
        return jsonify({"error": "Storage unavailable. Retry the request.", "code": StorageFailure.code}), 503

    @app.errorhandler(400)
    def bad_request(_err):
        return jsonify({"error": "Bad request", "code": "bad_request"}), 400

    @app.errorhandler(401)
    def unauthorized(_err):
        return jsonify({"error": "Unauthorized", "code": "unauthorized"}), 401

    @app.errorhandler(403)
    def forbidden(_err):
        return jsonify({"error": "Forbidden", "code": Forbidden.code}), 403

    @app.errorhandler(404)
    def not_found(_err):
        return jsonify({"error": "Not found", "code": NotFound.code}), 404

    @app.errorhandler(405)
    def method_not_allowed(_err):
        return jsonify({"error": "Method not allowed", "code": "method_not_allowed"}), 405

    @app.errorhandler(429)
    def too_many_requests(_err):
        return jsonify({"error": "Too many requests", "code": "rate_limited"}), 429

    @app.errorhandler(500)
    def server_error(_err):
        app.logger.exception("Internal server error")
        return jsonify({"error": "Internal server error", "code": "server_error"}), 500
