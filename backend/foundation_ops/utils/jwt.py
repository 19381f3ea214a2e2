"""Bearer tokens issued by the identity provider"""
from datetime import timedelta
from typing import Any, Dict, Optional

import jwt
from pydantic import ValidationError as PydanticValidationError

from ..config.settings import settings
from ..domain.errors import AuthenticationError
from ..domain.models import ActorContext
from .logger import get_logger
from .time import utc_now

logger = get_logger(__name__)

BEARER_PREFIX = "Bearer "


def _text_claim(claims: Dict[str, Any], name: str) -> str:
    value = claims.get(name)
    return value if isinstance(value, str) else ""


class JWTValidator:
    """
    Decodes identity-provider tokens into an ActorContext.

    The role claim is trusted as-is. An unrecognized role is not an
    authentication problem; it simply grants no screens.
    """

    def __init__(self, secret: Optional[str] = None, algorithm: Optional[str] = None):
        self._secret = secret or settings.jwt_secret
        self._algorithm = algorithm or settings.jwt_algorithm

    def validate_token(self, token: str) -> Dict[str, Any]:
        """Verified claims of a token, with or without the Bearer prefix"""
        if token.startswith(BEARER_PREFIX):
            token = token[len(BEARER_PREFIX):]
        if not token:
            raise AuthenticationError("Token is missing")

        audience = settings.jwt_audience
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                audience=audience,
                options={"verify_aud": audience is not None},
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidAudienceError:
            raise AuthenticationError("Invalid token audience")
        except jwt.PyJWTError as e:
            logger.warning(f"Undecodable token: {e}")
            raise AuthenticationError(f"Invalid token: {e}")

    def get_actor_context(self, token: str) -> ActorContext:
        """
        Actor named by a verified token

        A role claim that is not a string becomes "" and so grants nothing.
        An e-mail claim that is not an address is dropped.
        """
        claims = self.validate_token(token)
        user_id = claims.get("sub")
        if not user_id or not isinstance(user_id, str):
            raise AuthenticationError("Token has no subject")

        role = _text_claim(claims, "role")
        if claims.get("role") is not None and not role:
            logger.warning(f"Ignoring non-string role claim for {user_id}")

        actor = dict(
            user_id=user_id,
            display_name=_text_claim(claims, "name") or user_id,
            role=role,
        )
        try:
            return ActorContext(email=_text_claim(claims, "email") or None, **actor)
        except PydanticValidationError:
            logger.warning(f"Ignoring malformed e-mail claim for {user_id}")
            return ActorContext(**actor)

    def issue_token(
        self,
        user_id: str,
        role: str,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
        expires_in_minutes: int = 60,
    ) -> str:
        """Token in the identity provider's format, for dev tooling and tests"""
        issued_at = utc_now()
        claims: Dict[str, Any] = {
            "sub": user_id,
            "role": role,
            "name": display_name or user_id,
            "iat": issued_at,
            "exp": issued_at + timedelta(minutes=expires_in_minutes),
        }
        if email:
            claims["email"] = email
        if settings.jwt_audience:
            claims["aud"] = settings.jwt_audience
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)


_jwt_validator: Optional[JWTValidator] = None


def get_jwt_validator() -> JWTValidator:
    global _jwt_validator
    if _jwt_validator is None:
        _jwt_validator = JWTValidator()
    return _jwt_validator


def get_current_user(authorization: str) -> ActorContext:
    """Caller named by an Authorization header value"""
    if not authorization:
        raise AuthenticationError("Authorization header is missing")
    return get_jwt_validator().get_actor_context(authorization)
