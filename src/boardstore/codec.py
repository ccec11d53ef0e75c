"""Client-side encryption of content records and binary blobs.

Records are sealed with AES-256-GCM under the channel key named by their
``encryption_key_url``; the record type and key URL are bound as associated
data. Blobs get a fresh content key per upload, described by a secure content
reference (SCR) which is itself sealed under a channel key for transport.

Key material is fetched from the KMS on every call. Encryption and decryption of
bytes already in hand never suspend.
"""

from __future__ import annotations

import base64
import binascii
import json
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import ValidationError

from .errors import DecryptionDenied, IntegrityMismatch, KeyUnavailable, Malformed
from .logging import get_logger
from .models import (
    ContentFile,
    ContentRecord,
    EncryptedContent,
    EncryptedFile,
    NewContent,
    SecureContentReference,
)
from .services.base import KeyManagementService

logger = get_logger(__name__)

ENVELOPE_VERSION = "v1"
KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16
SCR_ENCRYPTION = "A256GCM"


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64decode(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as e:
        raise Malformed(f"Invalid base64 segment: {e}") from e


def _record_aad(content_type: str, key_url: str) -> bytes:
    return f"record\n{content_type}\n{key_url}".encode()


def _scr_aad(key_url: str) -> bytes:
    return f"scr\n{key_url}".encode()


def seal(key: bytes, plaintext: bytes, aad: bytes) -> str:
    """Encrypt ``plaintext`` into the compact ``v1.<iv>.<ciphertext>`` form."""
    iv = os.urandom(NONCE_SIZE)
    ciphertext = AESGCM(key).encrypt(iv, plaintext, aad)
    return ".".join([ENVELOPE_VERSION, _b64encode(iv), _b64encode(ciphertext)])


def unseal(key: bytes, sealed: str, aad: bytes) -> bytes:
    """Inverse of :func:`seal`.

    Raises:
        Malformed: If ``sealed`` is not a compact ciphertext produced with this key
    """
    parts = sealed.split(".") if isinstance(sealed, str) else []
    if len(parts) != 3 or parts[0] != ENVELOPE_VERSION:
        raise Malformed("Ciphertext is not a v1 compact envelope")

    iv = _b64decode(parts[1])
    ciphertext = _b64decode(parts[2])
    if len(iv) != NONCE_SIZE or len(ciphertext) < TAG_SIZE:
        raise Malformed("Ciphertext segments have invalid lengths")

    try:
        return AESGCM(key).decrypt(iv, ciphertext, aad)
    except InvalidTag as e:
        raise Malformed("Ciphertext failed authentication") from e


class ContentCodec:
    """Encrypts and decrypts records and blobs with keys obtained from the KMS."""

    def __init__(self, kms: KeyManagementService):
        self.kms = kms

    async def _key(self, key_url: str) -> bytes:
        key = await self.kms.get_key(key_url)
        if len(key) != KEY_SIZE:
            raise Malformed(f"Key material for {key_url} is not a 256-bit key")
        return key

    async def _decryption_key(self, key_url: str) -> bytes:
        try:
            return await self._key(key_url)
        except DecryptionDenied:
            raise
        except KeyUnavailable as e:
            logger.warning("Decryption key unavailable", key_url=key_url)
            raise DecryptionDenied(f"Cannot decrypt with key {key_url}: {e}", key_url) from e

    # Records

    async def encrypt_record(self, key_url: str, record: NewContent) -> EncryptedContent:
        """Encrypt a plaintext record into its transport envelope.

        Args:
            key_url: Channel key to bind the record to
            record: The plaintext record

        Returns:
            EncryptedContent bound to ``key_url``

        Raises:
            KeyUnavailable: If the participant cannot obtain ``key_url``
        """
        key = await self._key(key_url)
        return self._encrypt_record(key, key_url, record)

    async def encrypt_records(
        self, key_url: str, records: list[NewContent]
    ) -> list[EncryptedContent]:
        """Encrypt a batch of records with a single key fetch."""
        key = await self._key(key_url)
        return [self._encrypt_record(key, key_url, record) for record in records]

    def _encrypt_record(self, key: bytes, key_url: str, record: NewContent) -> EncryptedContent:
        document = {"payload": record.payload, "metadata": record.metadata or {}}
        plaintext = json.dumps(document, separators=(",", ":")).encode()

        encrypted_file = None
        if record.file is not None:
            encrypted_file = EncryptedFile(
                scr=seal(key, record.file.scr.model_dump_json().encode(), _scr_aad(key_url)),
                mime_type=record.file.mime_type,
                size=record.file.size,
                file_name=record.file.file_name,
            )

        return EncryptedContent(
            type=record.type,
            encryption_key_url=key_url,
            payload=seal(key, plaintext, _record_aad(record.type, key_url)),
            file=encrypted_file,
        )

    async def decrypt_record(self, envelope: EncryptedContent) -> ContentRecord:
        """Decrypt an envelope back into a plaintext record.

        Raises:
            DecryptionDenied: If the participant cannot obtain the envelope's key
            Malformed: If the envelope was not produced by ``encrypt_record``
        """
        key = await self._decryption_key(envelope.encryption_key_url)
        return self._decrypt_record(key, envelope)

    async def decrypt_records(self, envelopes: list[EncryptedContent]) -> list[ContentRecord]:
        """Decrypt a batch, fetching each distinct key once."""
        keys: dict[str, bytes] = {}
        records = []
        for envelope in envelopes:
            key_url = envelope.encryption_key_url
            if key_url not in keys:
                keys[key_url] = await self._decryption_key(key_url)
            records.append(self._decrypt_record(keys[key_url], envelope))
        return records

    def _decrypt_record(self, key: bytes, envelope: EncryptedContent) -> ContentRecord:
        key_url = envelope.encryption_key_url
        plaintext = unseal(key, envelope.payload, _record_aad(envelope.type, key_url))

        try:
            document = json.loads(plaintext)
        except ValueError as e:
            raise Malformed("Record payload is not a JSON document") from e

        if not isinstance(document, dict) or "payload" not in document:
            raise Malformed("Record payload document has an unexpected shape")

        content_file = None
        if envelope.file is not None:
            content_file = ContentFile(
                scr=self._open_scr(key, key_url, envelope.file.scr),
                mime_type=envelope.file.mime_type,
                size=envelope.file.size,
                file_name=envelope.file.file_name,
            )

        try:
            return ContentRecord(
                content_id=envelope.content_id,
                content_url=envelope.content_url,
                channel_url=envelope.channel_url,
                type=envelope.type,
                payload=document["payload"],
                metadata=document.get("metadata"),
                file=content_file,
                encryption_key_url=key_url,
                creator_id=envelope.creator_id,
                created_at=envelope.created_at,
            )
        except ValidationError as e:
            raise Malformed(f"Record payload document is invalid: {e}") from e

    # Blobs

    async def encrypt_blob(self, key_url: str, data: bytes) -> tuple[SecureContentReference, bytes]:
        """Encrypt a blob under a fresh content key.

        The participant must be able to obtain ``key_url``, the key the SCR will
        be sealed with.

        Returns:
            Tuple of (scr, ciphertext) where the SCR has no location yet
        """
        await self._key(key_url)

        content_key = AESGCM.generate_key(bit_length=256)
        iv = os.urandom(NONCE_SIZE)
        sealed = AESGCM(content_key).encrypt(iv, data, None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]

        scr = SecureContentReference(
            key=_b64encode(content_key),
            iv=_b64encode(iv),
            tag=_b64encode(tag),
            enc=SCR_ENCRYPTION,
        )
        return scr, ciphertext

    def decrypt_blob(self, scr: SecureContentReference, ciphertext: bytes) -> bytes:
        """Decrypt a blob described by ``scr``.

        Raises:
            IntegrityMismatch: If the ciphertext does not match the SCR's tag
            Malformed: If the SCR itself is unusable
        """
        if scr.enc != SCR_ENCRYPTION:
            raise Malformed(f"Unsupported SCR encryption: {scr.enc}")

        content_key = _b64decode(scr.key)
        iv = _b64decode(scr.iv)
        tag = _b64decode(scr.tag)
        if len(content_key) != KEY_SIZE or len(iv) != NONCE_SIZE or len(tag) != TAG_SIZE:
            raise Malformed("SCR key material has invalid lengths")

        try:
            return AESGCM(content_key).decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise IntegrityMismatch("Blob ciphertext does not match its SCR") from e

    # SCR transport

    async def seal_scr(self, key_url: str, scr: SecureContentReference) -> str:
        """Seal an SCR under a channel key for storage alongside channel data."""
        key = await self._key(key_url)
        return seal(key, scr.model_dump_json().encode(), _scr_aad(key_url))

    async def open_scr(self, key_url: str, sealed: str) -> SecureContentReference:
        """Inverse of :meth:`seal_scr`.

        Raises:
            DecryptionDenied: If the participant cannot obtain ``key_url``
            Malformed: If ``sealed`` is not a sealed SCR
        """
        key = await self._decryption_key(key_url)
        return self._open_scr(key, key_url, sealed)

    def _open_scr(self, key: bytes, key_url: str, sealed: str) -> SecureContentReference:
        plaintext = unseal(key, sealed, _scr_aad(key_url))
        try:
            return SecureContentReference.model_validate_json(plaintext)
        except ValidationError as e:
            raise Malformed(f"Sealed SCR is invalid: {e}") from e
