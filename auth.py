import uuid

from itsdangerous import BadData, SignatureExpired, URLSafeTimedSerializer
from passlib.context import CryptContext

from config import get_settings
from errors import InvalidToken

ACCESS = "access"
REFRESH = "refresh"

_passwords = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return _passwords.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return _passwords.verify(password, password_hash)


def _serializer(kind: str) -> URLSafeTimedSerializer:
    settings = get_settings()
    if kind == ACCESS:
        secret = settings.access_token_secret
    else:
        secret = settings.refresh_token_secret
    return URLSafeTimedSerializer(secret, salt=f"{kind}-token")


def _max_age_seconds(kind: str) -> int:
    settings = get_settings()
    if kind == ACCESS:
        return settings.access_token_ttl_minutes * 60
    return settings.refresh_token_ttl_minutes * 60


def create_token(user_id: uuid.UUID, kind: str) -> str:
    return _serializer(kind).dumps({"sub": str(user_id), "typ": kind})


def verify_token(token: str, kind: str) -> uuid.UUID:
    serializer = _serializer(kind)
    try:
        data = serializer.loads(token, max_age=_max_age_seconds(kind))
    except SignatureExpired as exc:
        raise InvalidToken("Token is expired") from exc
    except BadData as exc:
        raise InvalidToken() from exc

    if not isinstance(data, dict) or data.get("typ") != kind:
        raise InvalidToken()
    try:
        return uuid.UUID(str(data.get("sub")))
    except ValueError as exc:
        raise InvalidToken() from exc


def issue_tokens(user_id: uuid.UUID) -> tuple[str, str]:
    return create_token(user_id, ACCESS), create_token(user_id, REFRESH)


def verify_access_token(token: str) -> uuid.UUID:
    return verify_token(token, ACCESS)


def verify_refresh_token(token: str) -> uuid.UUID:
    return verify_token(token, REFRESH)
