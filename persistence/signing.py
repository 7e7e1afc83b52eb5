from __future__ import annotations

import base64
import hashlib
import hmac
from datetime import datetime, timezone
from email.utils import format_datetime
from urllib.parse import quote

COSMOS_API_VERSION = "2018-12-31"
BLOB_API_VERSION = "2020-10-02"
BLOB_TYPE = "BlockBlob"

# encodeURIComponent leaves these unescaped; the store expects the same encoding.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def rfc7231_date(now: datetime | None = None) -> str:
    """
    Format a timestamp as an RFC 7231 IMF-fixdate, e.g. "Tue, 07 Jan 2025 09:05:03 GMT".

    The same string is signed and sent as x-ms-date.
    """
    dt = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return format_datetime(dt.replace(microsecond=0), usegmt=True)


def sign(secret_b64: str, string_to_sign: str) -> str:
    """
    HMAC-SHA256 over string_to_sign with the base64-decoded secret, base64-encoded.

    A malformed secret raises binascii.Error; callers must treat that as a hard
    authorization failure.
    """
    key = base64.b64decode(secret_b64, validate=True)
    digest = hmac.new(key, string_to_sign.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def cosmos_string_to_sign(verb: str, resource_type: str, resource_link: str, date: str) -> str:
    # resource_link keeps its case; everything else is lowercased.
    return f"{verb.lower()}\n{resource_type.lower()}\n{resource_link}\n{date.lower()}\n\n"


def cosmos_auth_token(verb: str, resource_type: str, resource_link: str, date: str, master_key: str) -> str:
    """Master-key authorization token for the document store, URL-encoded."""
    sig = sign(master_key, cosmos_string_to_sign(verb, resource_type, resource_link, date))
    return quote(f"type=master&ver=1.0&sig={sig}", safe=_URI_COMPONENT_SAFE)


def blob_string_to_sign(
    verb: str,
    *,
    content_length: int,
    content_type: str,
    date: str,
    account: str,
    container: str,
    blob_name: str,
) -> str:
    return "\n".join(
        [
            verb,
            "",  # Content-Encoding
            "",  # Content-Language
            str(content_length) if content_length > 0 else "",
            "",  # Content-MD5
            content_type,
            "",  # Date (x-ms-date is used instead)
            "",  # If-Modified-Since
            "",  # If-Match
            "",  # If-None-Match
            "",  # If-Unmodified-Since
            "",  # Range
            f"x-ms-blob-type:{BLOB_TYPE}",
            f"x-ms-date:{date}",
            f"x-ms-version:{BLOB_API_VERSION}",
            f"/{account}/{container}/{blob_name}",
        ]
    )


def blob_shared_key(
    verb: str,
    *,
    content_length: int,
    content_type: str,
    date: str,
    account: str,
    account_key: str,
    container: str,
    blob_name: str,
) -> str:
    """SharedKey Authorization header value for a blob request."""
    string_to_sign = blob_string_to_sign(
        verb,
        content_length=content_length,
        content_type=content_type,
        date=date,
        account=account,
        container=container,
        blob_name=blob_name,
    )
    return f"SharedKey {account}:{sign(account_key, string_to_sign)}"
