from cryptography.fernet import Fernet, InvalidToken


class TokenCipher:
    """Fernet wrapper for OAuth secrets at rest."""

    def __init__(self, key: str):
        self._fernet = Fernet(key)

    def encrypt_value(self, value: str | None) -> str | None:
        if value is None:
            return None
        return self._fernet.encrypt(value.encode()).decode()

    def decrypt_value(self, value: str | None) -> str | None:
        if value is None:
            return None
        try:
            return self._fernet.decrypt(value.encode()).decode()
        except InvalidToken as exc:
            raise ValueError("Stored token could not be decrypted with ENCRYPTION_KEY") from exc


def mask(value: str | None, keep: int = 6) -> str:
    """Log-safe prefix of a secret."""
    if not value:
        return "<none>"
    return value[:keep] + "..."
