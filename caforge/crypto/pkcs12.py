# caforge/crypto/pkcs12.py
import logging

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from caforge.common.errors import ExportError
from caforge.common.models import PfxPassword
from caforge.crypto.keys import key_matches_cert

log = logging.getLogger(__name__)


def export_pkcs12(key, cert, password: PfxPassword, chain_cert=None, friendly_name: str = None) -> bytes:
    """
    Bundle key + cert (+ issuing CA cert) as PKCS#12.
    An empty password yields an unencrypted bundle; otherwise the key and
    certificates are encrypted with the best algorithm available.
    """
    if not password.requested:
        raise ExportError("no PKCS#12 export was requested")
    if not key_matches_cert(key, cert):
        raise ExportError("private key does not match the certificate")

    if password.value:
        encryption = serialization.BestAvailableEncryption(password.encoded())
    else:
        encryption = serialization.NoEncryption()

    cas = [chain_cert] if chain_cert is not None else None
    try:
        data = pkcs12.serialize_key_and_certificates(
            name=friendly_name.encode("utf-8") if friendly_name else None,
            key=key,
            cert=cert,
            cas=cas,
            encryption_algorithm=encryption,
        )
    except (ValueError, TypeError) as exc:
        raise ExportError(f"could not build PKCS#12 bundle: {exc}") from exc
    log.info("built PKCS#12 bundle (%s, %d chain cert(s))",
             "encrypted" if password.value else "unencrypted", len(cas or ()))
    return data
