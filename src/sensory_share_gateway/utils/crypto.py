import base64

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from passlib.context import CryptContext

from sensory_share_gateway.exceptions import ConfigurationError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

_SALT = b"SensoryShareGateway"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


class SecretCipher:
    """Шифрует/расшифровывает секреты S3-конфигураций (Fernet + PBKDF2)."""

    def __init__(self, encryption_secret: str | None):
        if not encryption_secret:
            raise ConfigurationError("Encryption secret must be provided explicitly.")
        kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=_SALT, iterations=100_000)
        self._fernet = Fernet(base64.urlsafe_b64encode(kdf.derive(encryption_secret.encode("utf-8"))))

    def encrypt(self, value: str) -> str:
        if not value:
            return ""
        return self._fernet.encrypt(value.encode("utf-8")).decode("utf-8")

    def decrypt(self, token: str) -> str:
        if not token:
            return ""
        try:
            return self._fernet.decrypt(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as e:
            raise ConfigurationError("Failed to decrypt storage secret; wrong encryption secret?") from e
