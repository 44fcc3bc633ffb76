"""
Signaling codec for manual (copy-paste) connection setup

A session description is turned into a single opaque line of text that a
person can copy from one terminal and paste into another:

    SessionDescription -> compact JSON -> zlib -> URL-safe base64 (no padding)

Decoding is lenient about what copy/paste does to text (wrapped lines,
standard base64 alphabet, '=' padding) and also accepts the uncompressed
base64(JSON) form produced by browser peers, but rejects anything that is
not a structurally valid description.
"""
import json
import zlib
import base64
import binascii
import logging
from dataclasses import dataclass, asdict

logger = logging.getLogger(__name__)

# Upper bound for a decoded description; real SDP with candidates is a few KB
MAX_TOKEN_BYTES = 64 * 1024

DESCRIPTION_TYPES = ("offer", "answer")


class DecodeError(ValueError):
    """Token is not a valid encoded session description"""


@dataclass(frozen=True)
class SessionDescription:
    """Description of one transport endpoint (SDP text plus its type)"""
    type: str
    sdp: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'SessionDescription':
        if not isinstance(data, dict):
            raise DecodeError("Description must be a JSON object")

        desc_type = data.get('type')
        sdp = data.get('sdp')
        if desc_type not in DESCRIPTION_TYPES:
            raise DecodeError(f"Unknown description type: {desc_type!r}")
        if not isinstance(sdp, str) or not sdp.strip():
            raise DecodeError("Description has no SDP")

        return cls(type=desc_type, sdp=sdp)


def encode(description: SessionDescription) -> str:
    """Encode a session description as a copy-paste safe token"""
    payload = json.dumps(
        description.to_dict(), sort_keys=True, separators=(',', ':')
    ).encode('utf-8')
    compressed = zlib.compress(payload, 9)
    return base64.urlsafe_b64encode(compressed).decode('ascii').rstrip('=')


def decode(token: str) -> SessionDescription:
    """
    Decode a token produced by encode() (or by a browser peer).

    Raises:
        DecodeError: If the token is not a valid encoded description
    """
    if not isinstance(token, str):
        raise DecodeError("Token must be text")

    # Pasted text may be wrapped across lines or carry stray spaces
    compact = ''.join(token.split())
    if not compact:
        raise DecodeError("Token is empty")

    compact = compact.rstrip('=').replace('+', '-').replace('/', '_')
    compact += '=' * (-len(compact) % 4)

    try:
        raw = base64.b64decode(compact, altchars=b'-_', validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Token is not valid base64: {e}") from e

    if raw[:1] != b'{':
        raw = _inflate(raw)

    if len(raw) > MAX_TOKEN_BYTES:
        raise DecodeError("Token is too large")

    try:
        data = json.loads(raw.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(f"Token does not contain a description: {e}") from e

    return SessionDescription.from_dict(data)


def _inflate(raw: bytes) -> bytes:
    """Decompress a zlib payload, refusing to expand past MAX_TOKEN_BYTES"""
    inflater = zlib.decompressobj()
    try:
        data = inflater.decompress(raw, MAX_TOKEN_BYTES + 1)
    except zlib.error as e:
        raise DecodeError(f"Token is corrupted: {e}") from e

    if len(data) > MAX_TOKEN_BYTES:
        raise DecodeError("Token is too large")
    if not inflater.eof:
        raise DecodeError("Token is truncated")
    if inflater.unused_data:
        raise DecodeError("Token has trailing data")
    return data
