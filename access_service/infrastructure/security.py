from datetime import datetime, timedelta, timezone

from jose import jwt, JWTError
from passlib.context import CryptContext

from ..config import settings
from ..domain.entities import Role

pwd = CryptContext(
    schemes=["bcrypt_sha256"],
    deprecated="auto",
    bcrypt_sha256__truncate_error=False,
)

class PasswordHasher:
    def hash(self, plain: str) -> str: return pwd.hash(plain)
    def verify(self, plain: str, hashed: str) -> bool: return pwd.verify(plain, hashed)

    def verify_and_update(self, plain: str, hashed: str) -> tuple[bool, str | None]:
        """Проверка пароля; второй элемент - новый хэш, если схема устарела."""
        return pwd.verify_and_update(plain, hashed)

def create_access_token(sub: str, role: Role = Role.STUDENT, minutes: int | None = None) -> str:
    # роль в токене только для UI, права всегда проверяются по БД
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "role": Role(role).value,
        "iat": now,
        "exp": now + timedelta(minutes=minutes or settings.ACCESS_TOKEN_MINUTES),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> str:
    """Возвращает email (sub) из токена или кидает JWTError."""
    payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    sub = payload.get("sub")
    if not sub:
        raise JWTError("No subject")
    return sub.strip().lower()
