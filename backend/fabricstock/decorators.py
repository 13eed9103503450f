# Overview: Request decorators for API routes (caller identity and error mapping).

from functools import wraps
from flask import current_app, g, jsonify, request

from .errors import (
    ConflictError,
    DependencyFailure,
    NotFoundError,
    PartialBatchFailure,
    ValidationError,
)


def require_user(f):
    """
    Establish the caller's user id.

    Authentication happens upstream: the auth provider forwards a
    pre-validated user id in AUTH_USER_HEADER (default X-User-Id). Every
    service call is scoped to g.user_id.

    Returns 401 when the header is missing or blank.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        header = current_app.config.get("AUTH_USER_HEADER", "X-User-Id")
        user_id = (request.headers.get(header) or "").strip()

        if not user_id:
            return jsonify({"error": "Authentication required"}), 401
        if len(user_id) > 64:
            return jsonify({"error": "Invalid user id"}), 401

        g.user_id = user_id
        return f(*args, **kwargs)

    return decorated_function


def handle_service_errors(action: str):
    """
    Map service exceptions to JSON error responses.

    - ValidationError      -> 400
    - NotFoundError        -> 404
    - ConflictError        -> 409
    - PartialBatchFailure  -> 422 (details lists every failing line)
    - DependencyFailure    -> 503 (retryable)
    - anything else        -> 500, logged as "Failed to <action>"
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ValidationError as e:
                return jsonify({"error": str(e)}), 400
            except NotFoundError as e:
                return jsonify({"error": str(e)}), 404
            except ConflictError as e:
                return jsonify({"error": str(e)}), 409
            except PartialBatchFailure as e:
                return jsonify({"error": str(e), "details": e.failures}), 422
            except DependencyFailure as e:
                current_app.logger.warning("Dependency failure while trying to %s: %s", action, e)
                return jsonify({"error": str(e), "retryable": True}), 503
            except Exception:
                current_app.logger.exception(f"Failed to {action}")
                return jsonify({"error": "Internal server error"}), 500

        return decorated_function

    return decorator
