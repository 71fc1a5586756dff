"""Password hashing helpers using PBKDF2 or Argon2id with explicit salts."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from typing import Optional

from argon2.exceptions import HashingError
from argon2.low_level import Type, hash_secret_raw

from ..errors import FatalError, InvalidInputError
from .randomness import RandomSource, secure_random

MIN_SALT_LENGTH = 16
ARGON2_MIN_SALT_LENGTH = 8

_PBKDF2_DIGESTS = {
    "pbkdf2_sha256": "sha256",
    "pbkdf2_sha512": "sha512",
}
ARGON2ID = "argon2id"
SCHEMES = frozenset(_PBKDF2_DIGESTS) | {ARGON2ID}


@dataclass(frozen=True)
class HashParams:
    """Key-derivation parameters.

    Stored hashes do not record these, so the values used to derive a
    credential must be supplied again to verify it.
    """

    scheme: str = "pbkdf2_sha512"
    iterations: int = 10000
    length: int = 64
    memory_cost: int = 64 * 1024
    parallelism: int = 2

    def check(self) -> None:
        if self.scheme not in SCHEMES:
            raise FatalError(f"Unsupported hash scheme: {self.scheme}")
        if self.iterations <= 0 or self.length <= 0:
            raise FatalError("Hash iterations and length must be positive")
        if self.scheme == ARGON2ID and (self.memory_cost <= 0 or self.parallelism <= 0):
            raise FatalError("Argon2 memory cost and parallelism must be positive")


@dataclass(frozen=True)
class Credential:
    password_hash: bytes
    salt: bytes


class PasswordHasher:
    """Derive and verify salted password hashes with optional peppering."""

    def __init__(
        self,
        params: Optional[HashParams] = None,
        *,
        salt_length: int = MIN_SALT_LENGTH,
        max_length: int = 1024,
        pepper: str = "",
        random_source: RandomSource = secrets.token_bytes,
    ) -> None:
        self.params = params or HashParams()
        self.params.check()
        if salt_length < MIN_SALT_LENGTH:
            raise FatalError(f"Salt length must be at least {MIN_SALT_LENGTH} bytes")
        self.salt_length = salt_length
        self.max_length = max_length
        self._pepper = pepper or ""
        self._random = random_source

    def generate_salt(self) -> bytes:
        return secure_random(self.salt_length, self._random)

    def hash(self, password: str, salt: bytes, params: Optional[HashParams] = None) -> bytes:
        secret = self._encode(password)
        params = params or self.params
        params.check()
        if params.scheme == ARGON2ID:
            if len(salt) < ARGON2_MIN_SALT_LENGTH:
                raise InvalidInputError(
                    f"Argon2 salt must be at least {ARGON2_MIN_SALT_LENGTH} bytes"
                )
            try:
                return hash_secret_raw(
                    secret=secret,
                    salt=salt,
                    time_cost=params.iterations,
                    memory_cost=params.memory_cost,
                    parallelism=params.parallelism,
                    hash_len=params.length,
                    type=Type.ID,
                )
            except HashingError as exc:
                raise FatalError(f"Argon2 derivation failed: {exc}") from exc
        return hashlib.pbkdf2_hmac(
            _PBKDF2_DIGESTS[params.scheme],
            secret,
            salt,
            params.iterations,
            dklen=params.length,
        )

    def derive(self, password: str) -> Credential:
        salt = self.generate_salt()
        return Credential(password_hash=self.hash(password, salt), salt=salt)

    def verify(
        self,
        password: str,
        salt: bytes,
        expected_hash: bytes,
        params: Optional[HashParams] = None,
    ) -> bool:
        try:
            candidate = self.hash(password, salt, params)
        except InvalidInputError:
            return False
        return constant_time_equals(candidate, expected_hash)

    def check_password(self, password: str) -> None:
        """Raise ``InvalidInputError`` unless ``password`` is acceptable for hashing."""

        self._encode(password)

    def _encode(self, password: str) -> bytes:
        if not password:
            raise InvalidInputError("Password must not be empty")
        try:
            encoded = f"{password}{self._pepper}".encode("utf-8")
        except UnicodeEncodeError as exc:
            raise InvalidInputError("Password is not valid UTF-8") from exc
        if len(password.encode("utf-8")) > self.max_length:
            raise InvalidInputError(
                f"Password exceeds the maximum length of {self.max_length} bytes"
            )
        return encoded


def constant_time_equals(left: bytes, right: bytes) -> bool:
    # Fixed-length digests so a length mismatch cannot return early.
    return hmac.compare_digest(
        hashlib.sha256(left).digest(),
        hashlib.sha256(right).digest(),
    )
