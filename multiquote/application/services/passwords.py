"""Password hashing helpers shared by the login and user administration flows."""

import secrets
import string

import bcrypt

_PASSWORD_ALPHABET = string.ascii_letters + string.digits + "!@#$%^&*()_+~"

# Compared against when the account does not exist so both paths pay for one bcrypt check.
_DUMMY_HASH = bcrypt.hashpw(b"multiquote-dummy-password", bcrypt.gensalt()).decode("utf-8")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash or a password beyond bcrypt's 72 byte input limit.
        return False


def burn_password_check(password: str) -> None:
    verify_password(password, _DUMMY_HASH)


def generate_random_password(length: int = 12) -> str:
    return "".join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(length))
