"""Firebase ID token verification."""

import json
import logging
import os
from typing import Optional, Union

import firebase_admin
from firebase_admin import auth, credentials
from firebase_admin import exceptions as firebase_exceptions

logger = logging.getLogger(__name__)


class InvalidTokenError(Exception):
    """Raised when a bearer token cannot be resolved to an email."""


def load_service_account(
    path: Optional[str], inline: Optional[str]
) -> Optional[Union[dict, str]]:
    """Return service account credentials from inline JSON or a file path."""
    if inline and inline.strip():
        return json.loads(inline)
    if path and os.path.exists(path):
        return path
    return None


class FirebaseVerifier:
    def __init__(self, firebase_app=None):
        self.firebase_app = firebase_app

    @classmethod
    def from_service_account(cls, source: Union[dict, str]) -> "FirebaseVerifier":
        if not firebase_admin._apps:
            firebase_app = firebase_admin.initialize_app(credentials.Certificate(source))
        else:
            firebase_app = firebase_admin.get_app()
        return cls(firebase_app)

    def verify(self, token: str) -> str:
        try:
            decoded = auth.verify_id_token(token, app=self.firebase_app)
        except (firebase_exceptions.FirebaseError, ValueError) as exc:
            raise InvalidTokenError(str(exc)) from exc

        email = (decoded or {}).get("email")
        if not email:
            raise InvalidTokenError("Token carries no email claim.")
        return email


class DisabledVerifier:
    def verify(self, token: str) -> str:
        raise InvalidTokenError("Identity verification is not configured.")


def build_verifier(path: Optional[str], inline: Optional[str]):
    try:
        source = load_service_account(path, inline)
    except ValueError as exc:
        logger.warning("Firebase service account JSON is invalid: %s", exc)
        source = None

    if source is None:
        logger.warning(
            "Firebase credentials not found; bearer tokens will not be verified."
        )
        return DisabledVerifier()

    return FirebaseVerifier.from_service_account(source)
