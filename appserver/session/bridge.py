"""
Session bridge.

Binds the generic session mechanism of one server to concrete storage
(session and user repositories) and to the signed cookie token format.
"""

import logging
import time
from typing import Any, Dict, Optional, Tuple

import jwt
from starlette.requests import HTTPConnection

from appserver.core.config import SessionConfig, Settings
from appserver.core.errors import ConfigurationError, TokenDecodeError
from appserver.core.registry import ServiceRegistry
from appserver.core.security import generate_random_string, validate_secret_key
from appserver.repositories.base import SessionRepository, UserRepository
from appserver.session.geoip import GeoIpLocator
from appserver.session.models import DecodedToken, Session

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


class SessionBridge:
    """Session bridge of a single server"""

    def __init__(self, settings: Settings, registry: ServiceRegistry, server: str):
        self.server = server

        self._settings = settings
        self._registry = registry

        config = settings.lookup(f"servers.{server}.session")
        if config is None:
            raise ConfigurationError(f"Server {server} has no session configuration")
        self._config: SessionConfig = config
        self._token_length = config.token_length

        self._session_repo: Optional[SessionRepository] = None
        if config.session_repository:
            self._session_repo = registry.get(config.session_repository)

        self._user_repo: Optional[UserRepository] = None
        if config.user_repository:
            self._user_repo = registry.get(config.user_repository)

        self._geoip = GeoIpLocator(config.geoip_database)

        try:
            validate_secret_key(config.secret)
        except ValueError as e:
            logger.warning(f"{server}: weak session secret: {e}")

    @property
    def secret(self) -> str:
        return self._config.secret

    @property
    def save_interval(self) -> float:
        """Combine and delay write operations, seconds"""
        return self._config.save_interval or 0

    @property
    def expiration_timeout(self) -> int:
        return self._config.expire_timeout or 0

    @property
    def expiration_interval(self) -> float:
        """Expiration scan interval, seconds"""
        return self._config.expire_interval or 0

    @property
    def token_var(self) -> str:
        """Cookie name"""
        return f"sid_{self.server}_{self._settings.project}"

    @property
    def token_length(self) -> int:
        return self._token_length

    @token_length.setter
    def token_length(self, length: int) -> None:
        self._token_length = length

    async def create(self, user: Optional[Any], request: Optional[HTTPConnection] = None) -> Session:
        """
        Create a session model.

        Args:
            user: User model or None for anonymous session
            request: Current request, used for the metadata snapshot

        Returns:
            New, unsaved session

        Raises:
            ConfigurationError: If neither a model nor a session repository is configured
        """
        if self._config.model:
            session = self._registry.get(self._config.model)
        elif self._session_repo is not None:
            session = self._session_repo.get_model()
        else:
            raise ConfigurationError("No model for the bridge")

        session.token = generate_random_string(self.token_length, lower=True, upper=True, digits=True)
        session.payload = {}
        session.info = self.get_info(request)
        session.user = user
        session.user_id = user.id if user is not None else None
        return session

    async def find(self, token: str, request: Optional[HTTPConnection] = None) -> Optional[Session]:
        """
        Find a session by token, resolving its user.

        Returns:
            The session or None when not found
        """
        if self._session_repo is None:
            return None

        sessions = await self._session_repo.find_by_token(token)
        session = sessions[0] if sessions else None
        if session is None:
            return None

        return await self.resolve(session, request)

    async def resolve(self, session: Session, request: Optional[HTTPConnection] = None) -> Session:
        """Attach the session's user and the metadata of the current request"""
        if session.user_id is not None and self._user_repo is not None:
            users = await self._user_repo.find(session.user_id)
            session.user = users[0] if users else None

        if request is not None:
            session.info = self.get_info(request)

        return session

    def refresh(self, session: Session, request: Optional[HTTPConnection] = None) -> None:
        """Update metadata and the user reference without writing"""
        if request is not None:
            session.info = self.get_info(request)
        session.user_id = session.user.id if session.user is not None else None

    async def save(self, session: Session, request: Optional[HTTPConnection] = None) -> None:
        self.refresh(session, request)
        if self._session_repo is not None:
            await self._session_repo.save(session)

    async def destroy(self, session: Session) -> None:
        if self._session_repo is not None:
            await self._session_repo.delete(session)

    async def expire(self) -> int:
        """Delete expired sessions; returns how many were removed"""
        if self._session_repo is None or self.expiration_timeout <= 0:
            return 0
        return await self._session_repo.delete_expired(self.expiration_timeout)

    def is_valid(self, session: Session) -> bool:
        """A session deserves a cookie only when it carries a payload or a user"""
        return session.has_state()

    def encode_token(self, session: Session) -> str:
        claims = {"token": session.token, "iat": int(time.time())}
        return jwt.encode(claims, self.secret, algorithm=JWT_ALGORITHM)

    def read_token(self, token: str) -> Tuple[str, Optional[int]]:
        """
        Verify a cookie token.

        Returns:
            The session token it refers to and its issue time

        Raises:
            TokenDecodeError: If the signature fails or the claims are malformed
        """
        try:
            claims = jwt.decode(token, self.secret, algorithms=[JWT_ALGORITHM])
        except jwt.PyJWTError as e:
            raise TokenDecodeError(f"Invalid session token: {e}") from e

        session_token = claims.get("token")
        if not isinstance(session_token, str) or not session_token:
            raise TokenDecodeError("Session token claim is missing")
        return session_token, claims.get("iat")

    async def decode_token(self, token: str, request: Optional[HTTPConnection] = None) -> DecodedToken:
        """
        Verify a cookie token and load the session it refers to.

        Returns:
            DecodedToken whose session is None if the record no longer exists

        Raises:
            TokenDecodeError: If the signature fails or the claims are malformed
        """
        session_token, issued_at = self.read_token(token)
        session = await self.find(session_token, request)
        return DecodedToken(session=session, issued_at=issued_at)

    def get_info(self, request: Optional[HTTPConnection]) -> Dict[str, Any]:
        """Snapshot of request metadata stored with the session"""
        ip = None
        forwarded = None
        agent = None
        if request is not None:
            if self._config.ip_header:
                ip = (request.headers.get(self._config.ip_header) or "").strip()
            if not ip and request.client is not None:
                ip = request.client.host
            forwarded = (request.headers.get("x-forwarded-for") or "").strip()
            agent = (request.headers.get("user-agent") or "").strip()

        return {
            "ip": ip or None,
            "forwarded_for": forwarded or None,
            "user_agent": agent or None,
            "geoip": self._geoip.lookup(ip) if ip else None,
        }

    def close(self) -> None:
        self._geoip.close()
