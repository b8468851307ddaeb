from functools import wraps
from typing import NamedTuple, Optional

from flask import current_app, g, jsonify, request

from .identity import InvalidTokenError
from .store import USERS

BEARER_PREFIX = "Bearer "
NO_ACCESS_MESSAGE = "You do not have the access to request"
NOT_ADMIN_MESSAGE = "You need additional permissions to perform this action."


class Identity(NamedTuple):
    email: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.email)


ANONYMOUS = Identity()


def resolve_identity(header: Optional[str], verifier) -> Identity:
    if not header or not header.startswith(BEARER_PREFIX):
        return ANONYMOUS

    token = header[len(BEARER_PREFIX):].strip()
    if not token:
        return ANONYMOUS

    try:
        return Identity(verifier.verify(token))
    except InvalidTokenError as exc:
        current_app.logger.debug("Bearer token rejected: %s", exc)
        return ANONYMOUS


def verify_token(view):
    """Attach the verified caller to ``g.identity``; never rejects the request."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        verifier = current_app.extensions["eyeside.verifier"]
        g.identity = resolve_identity(request.headers.get("Authorization"), verifier)
        return view(*args, **kwargs)

    return wrapper


def current_identity() -> Identity:
    return g.get("identity", ANONYMOUS)


def is_admin(user_document) -> bool:
    return bool(user_document) and user_document.get("role") == "admin"


def require_identity():
    identity = current_identity()
    if not identity.is_authenticated:
        return None, (jsonify({"message": NO_ACCESS_MESSAGE}), 403)
    return identity, None


def require_admin(store):
    identity, identity_error = require_identity()
    if identity_error:
        return None, identity_error

    user_document = store.find_one(USERS, {"email": identity.email})
    if not is_admin(user_document):
        return None, (jsonify({"message": NOT_ADMIN_MESSAGE}), 403)

    return user_document, None
