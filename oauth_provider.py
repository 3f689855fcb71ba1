"""
OAuth credential holder for the Mixer REST API.

The provider owns the long-lived bearer token and attaches it to every
outbound REST request.
"""

import logging
import os
from datetime import datetime
from typing import Dict, Optional

from config_manager import ConfigurationError
from exceptions import ExpiredCredential
from models import Credential


logger = logging.getLogger(__name__)


class OAuthProvider:
    """Attaches a bearer token to outbound requests."""

    def __init__(self, credential: Credential):
        self.credential = credential

    @classmethod
    def from_env(cls, variable: str = "mixer_token", lifetime_days: float = 365) -> 'OAuthProvider':
        """
        Build a provider from a token stored in the environment.

        Args:
            variable: Name of the environment variable holding the token
            lifetime_days: Validity of the token from now (tokens issued by
                the developer page last one year)

        Raises:
            ConfigurationError: If the variable is unset or empty
        """
        token = os.environ.get(variable, '').strip()
        if not token:
            raise ConfigurationError(f"Environment variable {variable} is not set")

        credential = Credential.with_lifetime(token, lifetime_days)
        logger.debug(f"Loaded OAuth token from {variable} (expires {credential.expires_at.isoformat()})")
        return cls(credential)

    def attach(self, headers: Optional[Dict[str, str]] = None, now: Optional[datetime] = None) -> Dict[str, str]:
        """
        Return a copy of ``headers`` carrying the Authorization header.

        Raises:
            ExpiredCredential: If the token expired
        """
        if self.credential.is_expired(now):
            raise ExpiredCredential(
                f"OAuth token expired at {self.credential.expires_at.isoformat()}"
            )

        attached = dict(headers or {})
        attached['Authorization'] = f'Bearer {self.credential.token}'
        return attached
