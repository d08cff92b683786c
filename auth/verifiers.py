"""Identity token verifiers.

Two providers are supported:
1. Firebase ID tokens: RS256, signed with Google's rotating x509 certificates
2. Shared-secret tokens: HS256, for local development and tests
"""

import logging
import re
import threading
import time
from typing import Any, Dict, Optional

import requests
from jose import jwt, JWTError

logger = logging.getLogger(__name__)

FIREBASE_ISSUER_PREFIX = "https://securetoken.google.com/"
CERTS_TIMEOUT_SECONDS = 10
DEFAULT_CERTS_MAX_AGE = 3600  # 1 hour


class TokenVerificationError(Exception):
    """Raised when a token is rejected. The message is for logs only."""
    pass


class TokenVerifier:
    """Verifies an identity token and returns its claims."""

    def verify(self, token: str) -> Dict[str, Any]:
        raise NotImplementedError

    @staticmethod
    def check_claims(claims: Dict[str, Any]) -> Dict[str, Any]:
        """Require a subject id and an email address."""
        uid = claims.get('uid') or claims.get('user_id') or claims.get('sub')
        if not uid:
            raise TokenVerificationError("Token has no subject")
        if not claims.get('email'):
            raise TokenVerificationError("Token has no email")
        claims = dict(claims)
        claims['uid'] = uid
        return claims


class SharedSecretVerifier(TokenVerifier):
    """HS256 tokens signed with a shared secret."""

    algorithm = "HS256"

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("identity_secret is required for the shared_secret provider")
        self.secret = secret

    def verify(self, token: str) -> Dict[str, Any]:
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            raise TokenVerificationError(str(e))
        return self.check_claims(claims)

    def issue(self, uid: str, email: str, name: Optional[str] = None, expires_in: int = 3600) -> str:
        """Sign a token for ``uid``. Used by local tooling and tests."""
        now = int(time.time())
        claims = {'sub': uid, 'uid': uid, 'email': email, 'iat': now, 'exp': now + expires_in}
        if name:
            claims['name'] = name
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)


class FirebaseTokenVerifier(TokenVerifier):
    """RS256 Firebase ID tokens checked against Google's signing certificates."""

    algorithm = "RS256"

    def __init__(self, project_id: str, certs_url: str, session: Optional[requests.Session] = None):
        if not project_id:
            raise ValueError("firebase_project_id is required for the firebase provider")
        self.project_id = project_id
        self.issuer = f"{FIREBASE_ISSUER_PREFIX}{project_id}"
        self.certs_url = certs_url
        self.session = session or requests.Session()
        self._certs: Dict[str, str] = {}
        self._certs_expire_at = 0.0
        self._lock = threading.Lock()

    def _fetch_certs(self) -> Dict[str, str]:
        """Return the kid -> PEM certificate map, refreshed per Cache-Control."""
        with self._lock:
            if self._certs and time.time() < self._certs_expire_at:
                return self._certs

            try:
                response = self.session.get(self.certs_url, timeout=CERTS_TIMEOUT_SECONDS)
                response.raise_for_status()
                certs = response.json()
            except (requests.RequestException, ValueError) as e:
                logger.error(f"Failed to fetch signing certificates: {e}")
                raise TokenVerificationError(f"Could not fetch signing certificates: {e}")

            max_age = DEFAULT_CERTS_MAX_AGE
            match = re.search(r'max-age=(\d+)', response.headers.get('Cache-Control', ''))
            if match:
                max_age = int(match.group(1))

            self._certs = certs
            self._certs_expire_at = time.time() + max_age
            logger.info(f"Loaded {len(certs)} signing certificates (cached {max_age}s)")
            return self._certs

    def verify(self, token: str) -> Dict[str, Any]:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise TokenVerificationError(f"Malformed token: {e}")

        if header.get('alg') != self.algorithm:
            raise TokenVerificationError(f"Unexpected algorithm {header.get('alg')}")

        cert = self._fetch_certs().get(header.get('kid'))
        if not cert:
            raise TokenVerificationError("Token signed with an unknown key")

        try:
            claims = jwt.decode(
                token,
                cert,
                algorithms=[self.algorithm],
                audience=self.project_id,
                issuer=self.issuer,
                options={'verify_at_hash': False}
            )
        except JWTError as e:
            raise TokenVerificationError(str(e))

        return self.check_claims(claims)


def build_verifier(settings: Dict[str, Any]) -> TokenVerifier:
    """Create the verifier selected by the ``identity_provider`` setting."""
    provider = settings['identity_provider']
    if provider == 'firebase':
        return FirebaseTokenVerifier(
            settings['firebase_project_id'],
            settings['firebase_certs_url']
        )
    if provider == 'shared_secret':
        return SharedSecretVerifier(settings['identity_secret'])
    raise ValueError(f"Unknown identity provider: {provider}")
