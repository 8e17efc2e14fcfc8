"""Crypto capability used by the key cache.

Everything that touches a concrete crypto backend lives here. Alternate
runtimes (HSMs, remote signers, test doubles) subclass :class:`CryptoInterface`
and pass an instance to :class:`~sparkwallet.client.WalletClient`.
"""

from __future__ import annotations

import base64
import binascii
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives import padding as sym_padding
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import DecryptionError, KeyDecodeError

LEGACY_CIPHER = "AES_256_CBC_PBKDF2_5000_SHA256"

_OPENSSL_SALT_PREFIX_LEN = 8  # b"Salted__"
_PSS_SALT_LENGTH = 32


@dataclass(frozen=True)
class SigningKeyPair:
    public_key: str
    """Base64 of the DER SubjectPublicKeyInfo, as expected by ``initialize_wallet``."""
    private_key: str
    """PKCS#8 PEM text, accepted by ``NodeKeyCache.load_key``."""


class CryptoInterface(ABC):
    """Signing and decryption primitives for wallet keys."""

    @abstractmethod
    def import_private_signing_key(self, der: bytes) -> Any:
        """Parse a DER private key into a backend handle. Raises :class:`KeyDecodeError`."""

    @abstractmethod
    def sign(self, key: Any, data: bytes) -> bytes:
        """Sign *data* with a handle returned by :meth:`import_private_signing_key`."""

    @abstractmethod
    def decrypt_secret_with_node_password(self, cipher: str, encrypted_secret: str, password: str) -> bytes:
        """Decrypt a password-protected secret. Raises :class:`DecryptionError`."""

    @abstractmethod
    def generate_signing_key_pair(self) -> SigningKeyPair:
        """Create a new wallet signing key pair."""


class DefaultCrypto(CryptoInterface):
    """:class:`CryptoInterface` backed by the ``cryptography`` package.

    Signatures are RSA-PSS over SHA-256 with a 32 byte salt. Encrypted keys
    use a PBKDF2-SHA256 derived AES key, either the legacy
    ``AES_256_CBC_PBKDF2_5000_SHA256`` format or a JSON header such as
    ``{"v": 2, "i": 500000}``.
    """

    def __init__(self, key_size: int = 4096) -> None:
        self._key_size = key_size

    def import_private_signing_key(self, der: bytes) -> rsa.RSAPrivateKey:
        try:
            key = serialization.load_der_private_key(der, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise KeyDecodeError(f"Could not parse signing key: {exc}") from exc
        if not isinstance(key, rsa.RSAPrivateKey):
            raise KeyDecodeError(f"Unsupported signing key type {type(key).__name__}")
        return key

    def sign(self, key: rsa.RSAPrivateKey, data: bytes) -> bytes:
        return key.sign(
            data,
            padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=_PSS_SALT_LENGTH),
            hashes.SHA256(),
        )

    def decrypt_secret_with_node_password(self, cipher: str, encrypted_secret: str, password: str) -> bytes:
        try:
            decoded = base64.b64decode(encrypted_secret, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DecryptionError("Encrypted secret is not valid base64") from exc

        if cipher == LEGACY_CIPHER:
            header: dict[str, Any] = {"v": 0, "i": 5000}
            decoded = decoded[_OPENSSL_SALT_PREFIX_LEN:]
        else:
            try:
                header = json.loads(cipher)
            except (json.JSONDecodeError, TypeError) as exc:
                raise DecryptionError(f"Unknown cipher {cipher!r}") from exc
            if not isinstance(header, dict):
                raise DecryptionError(f"Unknown cipher {cipher!r}")

        version = header.get("v")
        iterations = header.get("i")
        if not isinstance(version, int) or not 0 <= version <= 4:
            raise DecryptionError(f"Unknown version {version}")
        if not isinstance(iterations, int) or iterations <= 0:
            raise DecryptionError(f"Invalid iteration count {iterations}")

        if header.get("lsv") == 2 or version == 3:
            # nonce || ciphertext || salt
            nonce, ciphertext, salt = decoded[:12], decoded[12:-8], decoded[-8:]
            key, _ = _derive_key(password, salt, iterations, 32)
            return _decrypt_gcm(key, nonce, ciphertext)

        key_len = 32 if version < 4 else 16
        salt_len = 8 if version < 4 else 16
        salt, ciphertext = decoded[:salt_len], decoded[salt_len:]
        key, iv = _derive_key(password, salt, iterations, key_len)
        if version < 2:
            return _decrypt_cbc(key, iv[:16], ciphertext)
        return _decrypt_gcm(key, iv[:12], ciphertext)

    def generate_signing_key_pair(self) -> SigningKeyPair:
        private = rsa.generate_private_key(public_exponent=65537, key_size=self._key_size)
        public_der = private.public_key().public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        private_pem = private.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
        return SigningKeyPair(
            public_key=base64.b64encode(public_der).decode(),
            private_key=private_pem.decode(),
        )


def _derive_key(password: str, salt: bytes, iterations: int, key_len: int) -> tuple[bytes, bytes]:
    """Derive ``key_len`` bytes of key followed by ``key_len`` bytes of IV material."""
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=key_len * 2, salt=salt, iterations=iterations)
    derived = kdf.derive(password.encode())
    return derived[:key_len], derived[key_len:]


def _decrypt_gcm(key: bytes, nonce: bytes, ciphertext: bytes) -> bytes:
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except (InvalidTag, ValueError) as exc:
        raise DecryptionError("Unable to decrypt signing key with provided password. Please try again.") from exc


def _decrypt_cbc(key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
    try:
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = sym_padding.PKCS7(128).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as exc:
        raise DecryptionError("Unable to decrypt signing key with provided password. Please try again.") from exc
