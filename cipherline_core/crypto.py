"""
cipherline_core.crypto
----------------------
Key codec for Cipherline:

- RSA key pair generation (2048-bit by default, 1024-bit legacy knob)
- PEM envelope encode/decode with strict header/footer/tag checks
- RSA-OAEP (SHA-256) encrypt/decrypt of short UTF-8 text payloads

Public keys travel as SubjectPublicKeyInfo DER under "PUBLIC KEY"; private
keys as PKCS#8 DER under "PRIVATE KEY". Nothing here holds state.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
import re

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .constants import (
    RSA_PUBLIC_EXPONENT, DEFAULT_KEY_SIZE, SUPPORTED_KEY_SIZES,
    TAG_PUBLIC, TAG_PRIVATE, PEM_LABELS, OAEP_SHA256_OVERHEAD,
)
from .errors import KeyGenerationError, MalformedKeyError, EncryptionError, DecryptionError
from .utils import b64e, b64d, sha256

_LABEL_TO_TAG = {label: tag for tag, label in PEM_LABELS.items()}

_PEM_RE = re.compile(
    r"\A-----BEGIN (?P<head>[A-Z ]+)-----\n"
    r"(?P<body>[A-Za-z0-9+/=\n]+?)\n?"
    r"-----END (?P<foot>[A-Z ]+)-----\Z"
)


@dataclass(frozen=True)
class KeyPair:
    public_key: str
    private_key: str


@dataclass(frozen=True)
class PemBlock:
    tag: str      # "public" | "private"
    data: bytes   # DER


def _oaep() -> padding.OAEP:
    return padding.OAEP(mgf=padding.MGF1(algorithm=hashes.SHA256()), algorithm=hashes.SHA256(), label=None)


# --------- PEM envelope ----------
def encode_pem(raw: bytes, tag: str) -> str:
    if tag not in PEM_LABELS:
        raise ValueError(f"unknown PEM tag: {tag!r}")
    if not raw:
        raise ValueError("cannot encode empty key bytes")
    label = PEM_LABELS[tag]
    return f"-----BEGIN {label}-----\n{b64e(raw)}\n-----END {label}-----"


def decode_pem(pem: str, expected: Optional[str] = None) -> PemBlock:
    if not isinstance(pem, str) or not pem.strip():
        raise MalformedKeyError("empty key")
    text = pem.strip().replace("\r\n", "\n")
    m = _PEM_RE.match(text)
    if not m:
        raise MalformedKeyError("missing or truncated PEM header/footer")
    head, foot = m.group("head"), m.group("foot")
    if head != foot:
        raise MalformedKeyError(f"PEM header {head!r} does not match footer {foot!r}")
    tag = _LABEL_TO_TAG.get(head)
    if tag is None:
        raise MalformedKeyError(f"unsupported PEM label {head!r}")
    if expected is not None and tag != expected:
        raise MalformedKeyError(f"expected a {expected} key, got a {tag} key")
    try:
        data = b64d(m.group("body").replace("\n", ""))
    except ValueError as e:
        raise MalformedKeyError(str(e)) from e
    if not data:
        raise MalformedKeyError("empty key body")
    return PemBlock(tag=tag, data=data)


def load_public_key(pem: str) -> rsa.RSAPublicKey:
    block = decode_pem(pem, expected=TAG_PUBLIC)
    try:
        key = serialization.load_der_public_key(block.data)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise MalformedKeyError(f"unreadable public key: {e}") from e
    if not isinstance(key, rsa.RSAPublicKey):
        raise MalformedKeyError("public key is not RSA")
    return key


def load_private_key(pem: str) -> rsa.RSAPrivateKey:
    block = decode_pem(pem, expected=TAG_PRIVATE)
    try:
        key = serialization.load_der_private_key(block.data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise MalformedKeyError(f"unreadable private key: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise MalformedKeyError("private key is not RSA")
    return key


# --------- Key pairs ----------
def generate_keypair(key_size: int = DEFAULT_KEY_SIZE) -> KeyPair:
    """
    Generate a fresh RSA key pair and self-check it with a test
    encrypt/decrypt before handing it out.
    """
    if key_size not in SUPPORTED_KEY_SIZES:
        raise ValueError(f"unsupported key size {key_size}; use one of {SUPPORTED_KEY_SIZES}")
    try:
        sk = rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=key_size)
        pub_der = sk.public_key().public_bytes(
            serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
        )
        priv_der = sk.private_bytes(
            serialization.Encoding.DER, serialization.PrivateFormat.PKCS8, serialization.NoEncryption()
        )
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyGenerationError(f"key generation failed: {e}") from e

    pair = KeyPair(public_key=encode_pem(pub_der, TAG_PUBLIC), private_key=encode_pem(priv_der, TAG_PRIVATE))
    try:
        sample = "test"
        if decrypt(encrypt(sample, pair.public_key), pair.private_key) != sample:
            raise KeyGenerationError("key verification failed: round trip mismatch")
    except (EncryptionError, DecryptionError) as e:
        raise KeyGenerationError(f"key verification failed: {e}") from e
    return pair


def key_size(pem: str) -> int:
    block = decode_pem(pem)
    if block.tag == TAG_PUBLIC:
        return load_public_key(pem).key_size
    return load_private_key(pem).key_size


def max_plaintext_length(size_bits: int) -> int:
    return size_bits // 8 - OAEP_SHA256_OVERHEAD


def keypair_matches(public_pem: str, private_pem: str) -> bool:
    pub = load_public_key(public_pem).public_numbers()
    return load_private_key(private_pem).public_key().public_numbers() == pub


def compute_pubkey_fingerprint(public_pem: str) -> str:
    """
    Stable fingerprint for a public key: sha256 over the DER bytes, truncated
    to 32 hex chars.
    """
    return sha256(decode_pem(public_pem, expected=TAG_PUBLIC).data)[:32]


# --------- Encrypt / decrypt ----------
def encrypt(plaintext: str, public_key_pem: str) -> str:
    try:
        pk = load_public_key(public_key_pem)
    except MalformedKeyError as e:
        raise EncryptionError(f"cannot encrypt with malformed key: {e}") from e

    data = plaintext.encode("utf-8")
    limit = max_plaintext_length(pk.key_size)
    if len(data) > limit:
        raise EncryptionError(
            f"plaintext is {len(data)} bytes; a {pk.key_size}-bit key holds at most {limit}"
        )
    try:
        return b64e(pk.encrypt(data, _oaep()))
    except ValueError as e:
        raise EncryptionError(str(e)) from e


def decrypt(ciphertext: str, private_key_pem: str) -> str:
    try:
        sk = load_private_key(private_key_pem)
    except MalformedKeyError as e:
        raise DecryptionError(f"cannot decrypt with malformed key: {e}") from e

    try:
        raw = b64d(ciphertext)
    except (ValueError, AttributeError) as e:
        raise DecryptionError("ciphertext is not valid base64") from e
    try:
        pt = sk.decrypt(raw, _oaep())
    except ValueError as e:
        # wrong key and corrupt ciphertext are indistinguishable under OAEP
        raise DecryptionError("decryption failed: wrong key or corrupt ciphertext") from e
    try:
        return pt.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("decrypted payload is not UTF-8 text") from e
