"""
OAuth2 token cache for the OpenSky API.

OpenSky issues short-lived bearer tokens via the client-credentials grant.
The cache hands out the current token without I/O while it is fresh and
performs exactly one credential exchange when it expires, even if several
threads ask at the same moment (double-checked under a lock).

Failures propagate as AuthenticationError; retrying is the scheduler's
job (the next tick asks again).
"""

import logging
import threading
import time
from typing import Callable, Optional

import requests

from flighttracker.config import config
from flighttracker.exceptions import AuthenticationError, TickCancelled

logger = logging.getLogger(__name__)

# Tokens are refreshed this long before the issuer's expiry, and never
# cached for less than this
EXPIRY_SAFETY_SECONDS = 30


class TokenCache:
    """
    Thread-safe holder for the OpenSky bearer token.

    The token and its expiry are only ever read or written together, under
    self._lock, except for the lock-free fast path which reads both and
    falls through to the locked path on any doubt.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.timeout = timeout

        self.session = session or requests.Session()
        self._clock = clock
        self._lock = threading.Lock()

        self._token: Optional[str] = None
        self._expires_at: float = 0.0
        self._refresh_count = 0

    @classmethod
    def from_config(cls, session: Optional[requests.Session] = None) -> 'TokenCache':
        """Create cache from application configuration."""
        if not config.opensky.is_authenticated:
            raise AuthenticationError('Missing OPENSKY_CLIENT_ID / OPENSKY_CLIENT_SECRET')
        return cls(
            client_id=config.opensky.client_id,
            client_secret=config.opensky.client_secret,
            token_url=config.opensky.token_url,
            session=session,
            timeout=config.opensky.request_timeout_seconds,
        )

    def _cached(self) -> Optional[str]:
        token, expires_at = self._token, self._expires_at
        if token and self._clock() < expires_at:
            return token
        return None

    def get_token(self, cancel: Optional[threading.Event] = None) -> str:
        """
        Return a valid bearer token, refreshing it if expired.

        Raises AuthenticationError if the credential exchange fails and
        TickCancelled if the cancel event is set before the exchange starts.
        """
        token = self._cached()
        if token:
            return token

        with self._lock:
            # Another thread may have refreshed while we waited
            token = self._cached()
            if token:
                return token

            if cancel is not None and cancel.is_set():
                raise TickCancelled('Cancelled before token refresh')

            token, expires_in = self._exchange()
            lifetime = max(EXPIRY_SAFETY_SECONDS, expires_in - EXPIRY_SAFETY_SECONDS)
            self._token = token
            self._expires_at = self._clock() + lifetime
            self._refresh_count += 1

        logger.info(f'OpenSky token acquired. Expires in {expires_in}s (cached for {lifetime}s)')
        return token

    def _exchange(self):
        """POST the client-credentials grant; returns (access_token, expires_in)."""
        form = {
            'grant_type': 'client_credentials',
            'client_id': self.client_id,
            'client_secret': self.client_secret,
        }

        try:
            with self.session.post(self.token_url, data=form, timeout=self.timeout) as response:
                if not 200 <= response.status_code < 300:
                    raise AuthenticationError(
                        f'Token request failed: {response.status_code} {response.text[:500]}'
                    )
                payload = response.json()
        except requests.exceptions.RequestException as e:
            raise AuthenticationError(f'Token request failed: {e}') from e
        except ValueError as e:
            raise AuthenticationError(f'Token response is not JSON: {e}') from e

        if not isinstance(payload, dict):
            raise AuthenticationError('Token response is not a JSON object')

        token = payload.get('access_token')
        expires_in = payload.get('expires_in')
        if not token or not isinstance(token, str):
            raise AuthenticationError('Token response has no access_token')
        if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)):
            raise AuthenticationError('Token response has no numeric expires_in')

        return token, int(expires_in)

    def invalidate(self) -> None:
        """Forget the cached token so the next call re-authenticates."""
        with self._lock:
            self._token = None
            self._expires_at = 0.0

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                'has_token': self._token is not None,
                'expires_at': self._expires_at,
                'refresh_count': self._refresh_count,
            }
