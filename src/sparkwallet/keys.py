from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from .crypto import CryptoInterface, DefaultCrypto
from .errors import KeyDecodeError, KeyNotFoundError

logger = logging.getLogger(__name__)

_DER_SEQUENCE_TAG = 0x30
_PEM_TAGS = re.compile(r"-----(BEGIN|END)[A-Z ]*-----")


@dataclass
class _Entry:
    key: str
    handle: Any = field(default=None, repr=False)


class NodeKeyCache:
    """In-memory cache of decrypted signing keys, one per node id.

    Keys are stored as text: PEM as given, or base64 of raw DER. They are
    parsed by the crypto provider on first use, so malformed material surfaces
    as :class:`KeyDecodeError` from :meth:`sign`, not from :meth:`load_key`.
    """

    def __init__(self, crypto: CryptoInterface | None = None) -> None:
        self._crypto = crypto or DefaultCrypto()
        self._entries: dict[str, _Entry] = {}

    def load_key(self, node_id: str, key_material: str | bytes) -> None:
        """Cache *key_material* for *node_id*, replacing any previous key.

        ``bytes`` starting with ``0x30`` (an ASN.1 SEQUENCE) are treated as DER;
        other ``bytes`` are decoded as UTF-8 PEM text.
        """
        self._entries[node_id] = _Entry(_normalize(key_material))
        logger.debug("Loaded signing key for node %s", node_id)

    def has_key(self, node_id: str) -> bool:
        return node_id in self._entries

    def get_key(self, node_id: str) -> str | None:
        entry = self._entries.get(node_id)
        return entry.key if entry else None

    def remove_key(self, node_id: str) -> None:
        self._entries.pop(node_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def sign(self, node_id: str, payload: bytes) -> bytes:
        entry = self._entries.get(node_id)
        if entry is None:
            raise KeyNotFoundError(node_id)
        if entry.handle is None:
            entry.handle = self._crypto.import_private_signing_key(_to_der(entry.key))
        return self._crypto.sign(entry.handle, payload)

    def decrypt_with_password(self, node_id: str, password: str, cipher: str, encrypted_value: str) -> bytes:
        """Decrypt a server-held signing key and cache it under *node_id*.

        Raises :class:`~sparkwallet.errors.DecryptionError` on a wrong password,
        in which case the cache is left untouched.
        """
        key_material = self._crypto.decrypt_secret_with_node_password(cipher, encrypted_value, password)
        self.load_key(node_id, key_material)
        return key_material


def _normalize(key_material: str | bytes) -> str:
    if isinstance(key_material, str):
        return key_material
    if key_material[:1] == bytes([_DER_SEQUENCE_TAG]):
        return base64.b64encode(key_material).decode()
    try:
        return key_material.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise KeyDecodeError("Signing key is neither DER nor UTF-8 PEM text") from exc


def _to_der(key: str) -> bytes:
    body = "".join(_PEM_TAGS.sub("", key).split())
    try:
        return base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise KeyDecodeError("Signing key is not valid PEM or base64 DER") from exc
