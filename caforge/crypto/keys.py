# caforge/crypto/keys.py
"""
RSA key helpers using cryptography.
Provides:
 - generate_rsa_key(bits) -> RSAPrivateKey
 - private_key_pem(key) -> PEM bytes (unencrypted, traditional OpenSSL)
 - load_private_key(pem_bytes)
 - key_matches_cert(key, cert) -> bool
"""
import logging

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from caforge.common import settings
from caforge.common.errors import KeyGenerationError

log = logging.getLogger(__name__)


def generate_rsa_key(bits: int) -> rsa.RSAPrivateKey:
    """
    Generate a fresh RSA key. Any backend failure is reported as
    KeyGenerationError.
    """
    log.debug("generating %d-bit RSA key", bits)
    try:
        key = rsa.generate_private_key(public_exponent=settings.PUBLIC_EXPONENT, key_size=bits)
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise KeyGenerationError(f"could not generate {bits}-bit RSA key: {exc}") from exc
    log.info("generated %d-bit RSA key", bits)
    return key


def private_key_pem(key) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption()
    )


def load_private_key(pem_bytes: bytes):
    """
    Load a PEM-encoded private key (no password).
    """
    return serialization.load_pem_private_key(pem_bytes, password=None)


def _public_der(public_key) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo
    )


def key_matches_cert(key, cert) -> bool:
    """True if `key` is the private half of the public key inside `cert`."""
    return _public_der(key.public_key()) == _public_der(cert.public_key())
