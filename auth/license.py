"""
auth/license.py -- Tenant-keyed envelope encryption for licenses and stored credentials.

Envelope layout:
  payload key   32 random bytes, fresh for every encrypt() call.
  payload       AES-256-GCM under the payload key. The 12-byte nonce is
                SHA-256("IV-" + tenant_key)[:12]; because the payload key is
                never reused, a deterministic nonce never repeats under a key.
                Stored as base64(ciphertext || 16-byte tag).
  key material  the payload key, AES-256-CBC/PKCS7 under SHA-256(tenant_key)
                with an all-zero IV. Stored as base64.

Tenant isolation: decrypting under any other tenant key derives a different
wrapping key and a different nonce. Either the CBC padding check or the GCM
tag check rejects the result, so decrypt() raises LicenseDecryptionError
instead of returning wrong plaintext.

The tenant key is the tenant's external id (Client.row_id). The same codec
recovers project scheduler passwords, which are stored as envelopes keyed to
the owning tenant.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import base64
import binascii
import calendar
import hashlib
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from auth.models import Client, ClientLicense

logger = logging.getLogger("auditgate.license")

_KEY_BYTES = 32
_NONCE_BYTES = 12
_TAG_BYTES = 16
_WRAP_IV = bytes(16)


class LicenseDecryptionError(Exception):
    """Raised when an envelope cannot be opened with the supplied tenant key."""


@dataclass(frozen=True)
class LicenseResult:
    encrypted_license: str  # base64 cipher payload
    encrypted_private_key: str  # base64 wrapped payload key


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------


def _require(value: str, name: str) -> None:
    if value is None or not value.strip():
        raise ValueError(f"{name} cannot be empty.")


def _derive_wrapping_key(tenant_key: str) -> bytes:
    return hashlib.sha256(tenant_key.encode("utf-8")).digest()


def _derive_nonce(tenant_key: str) -> bytes:
    return hashlib.sha256(f"IV-{tenant_key}".encode("utf-8")).digest()[:_NONCE_BYTES]


def _b64encode(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _b64decode(value: str) -> bytes:
    return base64.b64decode(value.encode("ascii"), validate=True)


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


class LicenseCodec:
    """Encrypt and decrypt payloads bound to a tenant key.

    Stateless; one instance can be shared by the whole process.
    """

    def encrypt(self, payload: str, tenant_key: str) -> LicenseResult:
        _require(payload, "payload")
        _require(tenant_key, "tenant_key")

        payload_key = os.urandom(_KEY_BYTES)
        sealed = AESGCM(payload_key).encrypt(_derive_nonce(tenant_key), payload.encode("utf-8"), None)

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded_key = padder.update(payload_key) + padder.finalize()
        encryptor = Cipher(algorithms.AES(_derive_wrapping_key(tenant_key)), modes.CBC(_WRAP_IV)).encryptor()
        wrapped_key = encryptor.update(padded_key) + encryptor.finalize()

        logger.debug("License envelope sealed (%d payload bytes)", len(payload))
        return LicenseResult(
            encrypted_license=_b64encode(sealed),
            encrypted_private_key=_b64encode(wrapped_key),
        )

    def decrypt(self, result: LicenseResult, tenant_key: str) -> str:
        _require(result.encrypted_license, "encrypted_license")
        _require(result.encrypted_private_key, "encrypted_private_key")
        _require(tenant_key, "tenant_key")

        try:
            wrapped_key = _b64decode(result.encrypted_private_key)
            sealed = _b64decode(result.encrypted_license)
        except (binascii.Error, ValueError) as exc:
            raise LicenseDecryptionError("License data is not valid base64.") from exc
        if len(sealed) < _TAG_BYTES:
            raise LicenseDecryptionError("License data is truncated.")

        try:
            decryptor = Cipher(algorithms.AES(_derive_wrapping_key(tenant_key)), modes.CBC(_WRAP_IV)).decryptor()
            padded_key = decryptor.update(wrapped_key) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            payload_key = unpadder.update(padded_key) + unpadder.finalize()
            plaintext = AESGCM(payload_key).decrypt(_derive_nonce(tenant_key), sealed, None)
        except (InvalidTag, ValueError) as exc:
            # ValueError covers bad padding, wrong block length and a wrong-size unwrapped key.
            logger.warning("License decryption failed: incorrect tenant key or corrupted data")
            raise LicenseDecryptionError("Failed to decrypt license. Possibly incorrect key or corrupted data.") from exc

        return plaintext.decode("utf-8")


# ---------------------------------------------------------------------------
# Tenant licenses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LicenseWindow:
    client_row_id: str
    start_date: datetime
    end_date: datetime

    def is_valid(self, at: datetime | None = None) -> bool:
        moment = at or datetime.now(timezone.utc)
        return self.start_date <= moment <= self.end_date


def add_months(moment: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def license_period(
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    default_months: int = 6,
    now: datetime | None = None,
) -> tuple[datetime, datetime]:
    """Fill in a license validity period.

    start defaults to now (UTC) and end to now + default_months calendar
    months, independent of start. Raises ValueError if end precedes start.
    """
    now = now or datetime.now(timezone.utc)
    start = start_date or now
    end = end_date or add_months(now, default_months)
    if end < start:
        raise ValueError("License end date precedes its start date.")
    return start, end


def build_license_payload(client_row_id: str, start_date: datetime, end_date: datetime) -> str:
    """Serialize the pre-encryption license payload."""
    return json.dumps(
        {
            "clientId": client_row_id,
            "startDate": start_date.isoformat(),
            "endDate": end_date.isoformat(),
        }
    )


def issue_client_license(
    store,
    codec: LicenseCodec,
    client: Client,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    default_months: int = 6,
) -> ClientLicense:
    """Encrypt and persist a subscription license for a tenant.

    Missing dates default to now (UTC) and now + default_months calendar
    months. Returns the stored ClientLicense with its id filled in.
    """
    start, end = license_period(start_date, end_date, default_months)
    sealed = codec.encrypt(build_license_payload(client.row_id, start, end), client.row_id)
    client_license = ClientLicense(
        client_id=client.id,
        name=f"{client.name}-License",
        description=f"License for client {client.name}",
        start_date=start,
        end_date=end,
        license_key=sealed.encrypted_license,
        private_key=sealed.encrypted_private_key,
    )
    license_id = store.create_client_license(client_license)
    logger.info("Issued license %d for client %d (%s to %s)", license_id, client.id, start.date(), end.date())
    return ClientLicense(
        id=license_id,
        client_id=client_license.client_id,
        name=client_license.name,
        description=client_license.description,
        start_date=start,
        end_date=end,
        license_key=client_license.license_key,
        private_key=client_license.private_key,
    )


def read_license_window(codec: LicenseCodec, client_license: ClientLicense, client_row_id: str) -> LicenseWindow:
    """Decrypt a stored license and return its validity window.

    Raises LicenseDecryptionError if the envelope does not open under
    client_row_id or if the payload names a different tenant.
    """
    plaintext = codec.decrypt(
        LicenseResult(
            encrypted_license=client_license.license_key,
            encrypted_private_key=client_license.private_key,
        ),
        client_row_id,
    )
    try:
        payload = json.loads(plaintext)
        window = LicenseWindow(
            client_row_id=str(payload["clientId"]),
            start_date=_parse_timestamp(payload["startDate"]),
            end_date=_parse_timestamp(payload["endDate"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise LicenseDecryptionError("License payload is malformed.") from exc
    if window.client_row_id.lower() != client_row_id.lower():
        raise LicenseDecryptionError("License payload belongs to a different client.")
    return window
