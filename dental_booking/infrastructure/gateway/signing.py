from __future__ import annotations

import hmac
from typing import Mapping
from urllib.parse import urlencode

SIGNATURE_FIELD = "signature"


def canonical_string(fields: Mapping[str, str]) -> str:
    """Form-encoded key1=value1&key2=value2 over all non-signature fields, keys sorted."""
    return urlencode([(key, str(fields[key])) for key in sorted(fields) if key != SIGNATURE_FIELD])


def compute_signature(fields: Mapping[str, str], secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), canonical_string(fields).encode("utf-8"), "sha256").hexdigest()


def sign_fields(fields: Mapping[str, str], secret: str) -> dict[str, str]:
    signed = {key: str(value) for key, value in fields.items() if key != SIGNATURE_FIELD}
    signed[SIGNATURE_FIELD] = compute_signature(signed, secret)
    return signed


def verify_signature(fields: Mapping[str, str], signature: str | None, secret: str | None) -> bool:
    if not signature or not secret:
        return False
    expected = compute_signature(fields, secret)
    return hmac.compare_digest(expected, signature.strip().lower())
