"""Signed, time-limited session tokens."""

from dataclasses import dataclass

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from xenofy_engine.common.exceptions import AuthenticationError

TOKEN_SALT = "xenofy-session"


@dataclass(frozen=True)
class TokenClaims:
    tenant_id: str
    user_id: str
    email: str


class TokenService:
    """Issues and verifies session tokens carrying tenant and user identity."""

    def __init__(self, secret_key: str, max_age: int = 86400):
        self.max_age = max_age
        self._serializer = URLSafeTimedSerializer(secret_key, salt=TOKEN_SALT)

    def issue(self, tenant_id: str, user_id: str, email: str) -> str:
        return self._serializer.dumps(
            {"tenant_id": tenant_id, "user_id": user_id, "email": email}
        )

    def verify(self, token: str) -> TokenClaims:
        """Decode a token. Raises AuthenticationError if tampered, malformed or expired."""
        try:
            payload = self._serializer.loads(token, max_age=self.max_age)
        except SignatureExpired as e:
            raise AuthenticationError("Token expired") from e
        except BadSignature as e:
            raise AuthenticationError("Invalid token") from e

        if not isinstance(payload, dict):
            raise AuthenticationError("Invalid token")
        try:
            return TokenClaims(
                tenant_id=str(payload["tenant_id"]),
                user_id=str(payload["user_id"]),
                email=str(payload["email"]),
            )
        except KeyError as e:
            raise AuthenticationError("Invalid token") from e
