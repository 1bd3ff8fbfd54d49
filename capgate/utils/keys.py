"""Authority key pairs and ``did:key`` identifiers.

Keys are NIST P-256 (``ES256``) so tokens can be signed and verified with
python-jose.  A DID is ``did:key:`` + multibase(base58btc) of the multicodec
``p256-pub`` prefix followed by the compressed public point.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

DID_KEY_PREFIX = "did:key:"

# Multibase prefix for base58btc encoding
MULTIBASE_BASE58BTC = "z"

# Multicodec prefix for P-256 public keys (0x1200, varint encoded)
MULTICODEC_P256_PUB = bytes([0x80, 0x24])

# Order of the P-256 group; private scalars live in [1, n - 1]
_P256_ORDER = 0xFFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def base58_encode(data: bytes) -> str:
    num = int.from_bytes(data, "big")
    result = ""
    while num > 0:
        num, remainder = divmod(num, 58)
        result = BASE58_ALPHABET[remainder] + result

    # Leading zero bytes map to leading '1's
    for byte in data:
        if byte != 0:
            break
        result = BASE58_ALPHABET[0] + result
    return result


def base58_decode(string: str) -> bytes:
    num = 0
    for char in string:
        index = BASE58_ALPHABET.find(char)
        if index < 0:
            raise ValueError(f"Invalid base58 character: {char!r}")
        num = num * 58 + index

    body = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    leading = len(string) - len(string.lstrip(BASE58_ALPHABET[0]))
    return b"\x00" * leading + body


@dataclass(frozen=True)
class KeyPair:
    """P-256 signing key for a token issuer."""

    private_key: ec.EllipticCurvePrivateKey

    @classmethod
    def generate(cls) -> "KeyPair":
        return cls(ec.generate_private_key(ec.SECP256R1()))

    @classmethod
    def from_secret(cls, secret: str) -> "KeyPair":
        """Derive the same key pair from the same secret, every time."""
        digest = hashlib.sha256(secret.encode()).digest()
        scalar = int.from_bytes(digest, "big") % (_P256_ORDER - 1) + 1
        return cls(ec.derive_private_key(scalar, ec.SECP256R1()))

    @property
    def public_key(self) -> ec.EllipticCurvePublicKey:
        return self.private_key.public_key()

    def did(self) -> str:
        point = self.public_key.public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.CompressedPoint,
        )
        return DID_KEY_PREFIX + MULTIBASE_BASE58BTC + base58_encode(MULTICODEC_P256_PUB + point)

    def private_pem(self) -> str:
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode()


def public_key_from_did(did: str) -> ec.EllipticCurvePublicKey:
    """Inverse of ``KeyPair.did``; raises ``ValueError`` for anything else."""
    if not isinstance(did, str) or not did.startswith(DID_KEY_PREFIX + MULTIBASE_BASE58BTC):
        raise ValueError(f"Unsupported DID: {did!r}")
    decoded = base58_decode(did[len(DID_KEY_PREFIX) + 1:])
    if decoded[:2] != MULTICODEC_P256_PUB:
        raise ValueError(f"Unsupported key type in DID: {did!r}")
    return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), decoded[2:])


def public_pem_from_did(did: str) -> str:
    return public_key_from_did(did).public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


@dataclass(frozen=True)
class AuthorityContext:
    """The process-wide authority: its signing key and the root DID it anchors."""

    keypair: KeyPair
    root_issuer: str

    @classmethod
    def from_secret(cls, secret: str) -> "AuthorityContext":
        keypair = KeyPair.from_secret(secret)
        return cls(keypair=keypair, root_issuer=keypair.did())
