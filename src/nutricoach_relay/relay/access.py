"""Optional shared-secret gate."""
from __future__ import annotations
import hmac

from nutricoach_relay.relay.errors import AuthError

SECRET_HEADER = "x-family-secret"

def check_shared_secret(expected: str | None, provided: str | None) -> None:
    """
    Raise AuthError unless ``provided`` equals the configured secret.

    No configured secret disables the gate. Starlette decodes header values as
    latin-1, so the raw header bytes are recovered before comparing them with
    the UTF-8 form of the secret.
    """
    if not expected:
        return
    if provided is None or not hmac.compare_digest(provided.encode("latin-1"), expected.encode("utf-8")):
        raise AuthError()
