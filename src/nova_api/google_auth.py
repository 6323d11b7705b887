"""
Google sign-in: verify an ID token obtained by the frontend.

Verification goes through Google's tokeninfo endpoint, which checks the
signature and expiry; we additionally check the audience and issuer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from nova_api.config import GOOGLE_CLIENT_ID
from nova_api.errors import AuthenticationError

logger = logging.getLogger(__name__)

GOOGLE_TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"
GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


@dataclass(frozen=True)
class GoogleIdentity:
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None


class GoogleTokenVerifier:
    def __init__(self, client_id: str, timeout: float = 5.0):
        self.client_id = client_id
        self.timeout = timeout

    # PUBLIC_INTERFACE
    def verify(self, id_token: str) -> GoogleIdentity:
        """
        Return the identity carried by a valid Google ID token.

        Raises:
            AuthenticationError: not configured, token rejected, or Google unreachable.
        """
        if not self.client_id:
            raise AuthenticationError("Google sign-in is not configured")
        try:
            resp = requests.get(GOOGLE_TOKENINFO_URL, params={"id_token": id_token}, timeout=self.timeout)
        except requests.RequestException:
            logger.exception("Google tokeninfo request failed")
            raise AuthenticationError("Google authentication failed")

        if resp.status_code != 200:
            raise AuthenticationError("Invalid Google token")
        data = resp.json()
        if data.get("aud") != self.client_id or data.get("iss") not in GOOGLE_ISSUERS:
            raise AuthenticationError("Invalid Google token")
        email = data.get("email")
        if not email or str(data.get("email_verified", "false")).lower() != "true":
            raise AuthenticationError("Google account email is not verified")
        return GoogleIdentity(email=email.lower(), name=data.get("name"), picture=data.get("picture"))


# PUBLIC_INTERFACE
def get_google_verifier() -> GoogleTokenVerifier:
    """FastAPI dependency; tests override it to avoid calling Google."""
    return GoogleTokenVerifier(GOOGLE_CLIENT_ID)
