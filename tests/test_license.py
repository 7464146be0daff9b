"""
tests/test_license.py -- Unit tests for the tenant-keyed license codec and
license issuance helpers.

Coverage:
  - encrypt/decrypt under the same tenant key returns the payload
  - decrypt under a different tenant key raises LicenseDecryptionError
  - empty payload / empty tenant key raise ValueError
  - corrupted or truncated ciphers raise LicenseDecryptionError
  - issue_client_license defaults (now, now + 6 months) and persistence
  - license_period takes the default end from now, not from the start date
  - read_license_window rejects a payload bound to another client
"""

from __future__ import annotations

import base64
import json
from datetime import datetime, timedelta, timezone

import pytest

from auth.license import (
    LicenseCodec,
    LicenseDecryptionError,
    LicenseResult,
    LicenseWindow,
    add_months,
    build_license_payload,
    issue_client_license,
    license_period,
    read_license_window,
)
from auth.models import Client, ClientLicense

TENANT_A = "11111111-1111-1111-1111-111111111111"
TENANT_B = "22222222-2222-2222-2222-222222222222"


class TestLicenseCodec:
    def test_round_trip_returns_payload(self, codec: LicenseCodec) -> None:
        payload = '{"clientId":"x","startDate":"2024-01-01","endDate":"2024-07-01"}'
        sealed = codec.encrypt(payload, TENANT_A)
        assert codec.decrypt(sealed, TENANT_A) == payload

    def test_unicode_payload_survives(self, codec: LicenseCodec) -> None:
        sealed = codec.encrypt("Zürich – 東京", TENANT_A)
        assert codec.decrypt(sealed, TENANT_A) == "Zürich – 東京"

    def test_other_tenant_key_cannot_decrypt(self, codec: LicenseCodec) -> None:
        sealed = codec.encrypt("tenant A secret", TENANT_A)
        with pytest.raises(LicenseDecryptionError):
            codec.decrypt(sealed, TENANT_B)

    def test_each_encryption_uses_a_fresh_key(self, codec: LicenseCodec) -> None:
        first = codec.encrypt("same payload", TENANT_A)
        second = codec.encrypt("same payload", TENANT_A)
        assert first.encrypted_private_key != second.encrypted_private_key
        assert first.encrypted_license != second.encrypted_license

    def test_ciphers_are_base64(self, codec: LicenseCodec) -> None:
        sealed = codec.encrypt("payload", TENANT_A)
        # 32-byte key plus a full PKCS7 padding block.
        assert len(base64.b64decode(sealed.encrypted_private_key)) == 48
        # ciphertext plus 16-byte tag.
        assert len(base64.b64decode(sealed.encrypted_license)) == len("payload") + 16

    @pytest.mark.parametrize("payload,key", [("", TENANT_A), ("payload", ""), ("payload", "   ")])
    def test_empty_inputs_rejected(self, codec: LicenseCodec, payload: str, key: str) -> None:
        with pytest.raises(ValueError):
            codec.encrypt(payload, key)

    def test_tampered_payload_rejected(self, codec: LicenseCodec) -> None:
        sealed = codec.encrypt("payload", TENANT_A)
        raw = bytearray(base64.b64decode(sealed.encrypted_license))
        raw[0] ^= 0x01
        tampered = LicenseResult(
            encrypted_license=base64.b64encode(bytes(raw)).decode("ascii"),
            encrypted_private_key=sealed.encrypted_private_key,
        )
        with pytest.raises(LicenseDecryptionError):
            codec.decrypt(tampered, TENANT_A)

    def test_invalid_base64_rejected(self, codec: LicenseCodec) -> None:
        with pytest.raises(LicenseDecryptionError):
            codec.decrypt(LicenseResult(encrypted_license="not base64!", encrypted_private_key="???"), TENANT_A)

    def test_truncated_payload_rejected(self, codec: LicenseCodec) -> None:
        sealed = codec.encrypt("payload", TENANT_A)
        short = LicenseResult(
            encrypted_license=base64.b64encode(b"short").decode("ascii"),
            encrypted_private_key=sealed.encrypted_private_key,
        )
        with pytest.raises(LicenseDecryptionError):
            codec.decrypt(short, TENANT_A)


class TestAddMonths:
    def test_plain_addition(self) -> None:
        assert add_months(datetime(2026, 1, 15, tzinfo=timezone.utc), 6) == datetime(2026, 7, 15, tzinfo=timezone.utc)

    def test_year_rollover(self) -> None:
        assert add_months(datetime(2026, 10, 1), 6) == datetime(2027, 4, 1)

    def test_day_clamped_to_month_end(self) -> None:
        assert add_months(datetime(2026, 8, 31), 6) == datetime(2027, 2, 28)


class TestLicensePeriod:
    NOW = datetime(2026, 3, 10, tzinfo=timezone.utc)

    def test_defaults_from_now(self) -> None:
        assert license_period(now=self.NOW) == (self.NOW, datetime(2026, 9, 10, tzinfo=timezone.utc))

    def test_end_defaults_from_now_not_start(self) -> None:
        start = datetime(2026, 5, 1, tzinfo=timezone.utc)
        assert license_period(start, now=self.NOW) == (start, datetime(2026, 9, 10, tzinfo=timezone.utc))

    def test_start_past_default_end_rejected(self) -> None:
        with pytest.raises(ValueError):
            license_period(datetime(2027, 1, 1, tzinfo=timezone.utc), now=self.NOW)


class TestClientLicenses:
    def test_payload_format(self) -> None:
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        end = datetime(2026, 7, 1, tzinfo=timezone.utc)
        payload = json.loads(build_license_payload(TENANT_A, start, end))
        assert payload == {
            "clientId": TENANT_A,
            "startDate": start.isoformat(),
            "endDate": end.isoformat(),
        }

    def test_issue_defaults_to_six_months_from_now(self, store, codec, tenant) -> None:
        before = datetime.now(timezone.utc)
        issued = issue_client_license(store, codec, tenant.client)
        after = datetime.now(timezone.utc)

        assert issued.id is not None
        assert before <= issued.start_date <= after
        assert issued.end_date == add_months(issued.start_date, 6)
        assert issued.name == "Acme-License"

    def test_issued_license_is_stored_and_readable(self, store, codec, tenant) -> None:
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        end = datetime(2026, 7, 1, tzinfo=timezone.utc)
        issue_client_license(store, codec, tenant.client, start_date=start, end_date=end)

        stored = store.get_latest_client_license(tenant.client.id)
        assert stored is not None
        window = read_license_window(codec, stored, tenant.client.row_id)
        assert window.client_row_id == tenant.client.row_id
        assert window.start_date == start
        assert window.end_date == end
        assert window.is_valid(datetime(2026, 3, 1, tzinfo=timezone.utc))
        assert not window.is_valid(datetime(2026, 8, 1, tzinfo=timezone.utc))

    def test_end_before_start_rejected(self, store, codec, tenant) -> None:
        start = datetime(2026, 7, 1, tzinfo=timezone.utc)
        with pytest.raises(ValueError):
            issue_client_license(store, codec, tenant.client, start_date=start, end_date=start - timedelta(days=1))

    def test_license_cannot_be_read_for_another_client(self, store, codec) -> None:
        client = Client(name="Other", row_id=TENANT_A)
        client.id = store.create_client(client)
        issued = issue_client_license(store, codec, client)
        with pytest.raises(LicenseDecryptionError):
            read_license_window(codec, issued, TENANT_B)

    def test_payload_naming_another_client_rejected(self, codec) -> None:
        # Sealed under TENANT_A but claiming TENANT_B inside.
        now = datetime.now(timezone.utc)
        sealed = codec.encrypt(build_license_payload(TENANT_B, now, now), TENANT_A)
        forged = Client(name="Forged", row_id=TENANT_A, id=1)
        stored = ClientLicense(
            client_id=forged.id,
            name="Forged-License",
            start_date=now,
            end_date=now,
            license_key=sealed.encrypted_license,
            private_key=sealed.encrypted_private_key,
        )
        with pytest.raises(LicenseDecryptionError):
            read_license_window(codec, stored, TENANT_A)

    def test_window_validity_bounds_inclusive(self) -> None:
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        end = datetime(2026, 2, 1, tzinfo=timezone.utc)
        window = LicenseWindow(client_row_id=TENANT_A, start_date=start, end_date=end)
        assert window.is_valid(start)
        assert window.is_valid(end)
