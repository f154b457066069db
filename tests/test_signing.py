"""Tests for webhook payload signing."""

import hashlib
import hmac
import json

from gateway_indexer.services.signing import canonical_payload, generate_secret, sign, verify

SECRET = "whsec-test"


class TestCanonicalPayload:
    def test_fixed_top_level_order_and_sorted_data(self):
        body = canonical_payload(7, "payment.completed", 1700000000, {"payer": "0xB", "amount": "100"})

        assert body == (
            '{"id":7,"event":"payment.completed","timestamp":1700000000,'
            '"data":{"amount":"100","payer":"0xB"}}'
        )

    def test_data_key_order_does_not_matter(self):
        a = canonical_payload(1, "payment.created", 1, {"a": 1, "b": {"y": 1, "x": 2}})
        b = canonical_payload(1, "payment.created", 1, {"b": {"x": 2, "y": 1}, "a": 1})
        assert a == b

    def test_non_ascii_is_escaped(self):
        body = canonical_payload(1, "payment.created", 1, {"name": "Café"})
        assert "\\u00e9" in body
        assert json.loads(body)["data"]["name"] == "Café"


class TestSignVerify:
    def test_sign_is_hmac_sha256_hex_of_body(self):
        body = canonical_payload(1, "payment.created", 1, {"amount": "1"})
        expected = hmac.new(SECRET.encode(), body.encode(), hashlib.sha256).hexdigest()

        assert sign(body, SECRET) == expected
        assert sign(body.encode("utf-8"), SECRET) == expected

    def test_mapping_is_signed_in_canonical_form(self):
        payload = {"data": {"b": 2, "a": 1}, "timestamp": 5, "event": "payment.expired", "id": 3}
        body = canonical_payload(3, "payment.expired", 5, {"a": 1, "b": 2})

        assert sign(payload, SECRET) == sign(body, SECRET)

    def test_round_trip(self):
        body = canonical_payload(1, "payment.created", 1, {"amount": "1"})
        assert verify(body, sign(body, SECRET), SECRET)

    def test_uppercase_and_whitespace_signature_accepted(self):
        body = "{}"
        assert verify(body, f"  {sign(body, SECRET).upper()}\n", SECRET)

    def test_tampered_body_rejected(self):
        body = canonical_payload(1, "payment.created", 1, {"amount": "1"})
        signature = sign(body, SECRET)
        tampered = body.replace('"amount":"1"', '"amount":"2"')

        assert not verify(tampered, signature, SECRET)

    def test_wrong_secret_rejected(self):
        body = "{}"
        assert not verify(body, sign(body, SECRET), "other-secret")

    def test_non_string_signature_rejected(self):
        assert not verify("{}", None, SECRET)


class TestGenerateSecret:
    def test_secret_is_256_bit_hex(self):
        secret = generate_secret()
        assert len(secret) == 64
        int(secret, 16)

    def test_secrets_are_unique(self):
        assert generate_secret() != generate_secret()
