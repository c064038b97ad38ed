# caforge/crypto/pki.py
"""
Certificate authority engine: root CA creation, CSR building, leaf issuance
and the verification helpers used to check what was issued.
"""
import datetime
import ipaddress
import logging
from typing import List, Optional, Sequence, Tuple

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from caforge.common import settings
from caforge.common.errors import InvalidParameter, MalformedRequestError, SigningError
from caforge.common.models import DistinguishedName, SanEntry, SanKind
from caforge.common.utils import match_ipv4_literal, now_utc
from caforge.crypto.keys import generate_rsa_key, key_matches_cert

log = logging.getLogger(__name__)

_NAME_FIELDS = (
    ("country", NameOID.COUNTRY_NAME),
    ("state", NameOID.STATE_OR_PROVINCE_NAME),
    ("organization", NameOID.ORGANIZATION_NAME),
    ("organizational_unit", NameOID.ORGANIZATIONAL_UNIT_NAME),
    ("common_name", NameOID.COMMON_NAME),
)


def build_name(dn: DistinguishedName) -> x509.Name:
    """Encode a DistinguishedName, skipping attributes that are not set."""
    attrs = []
    for field, oid in _NAME_FIELDS:
        value = getattr(dn, field)
        if value is None:
            continue
        try:
            attrs.append(x509.NameAttribute(oid, value))
        except ValueError as exc:
            raise InvalidParameter(f"bad {field} {value!r}: {exc}") from exc
    return x509.Name(attrs)


def root_subject(name: str) -> DistinguishedName:
    return DistinguishedName(
        common_name=name,
        organization=name,
        country=settings.ROOT_COUNTRY,
        state=settings.ROOT_STATE,
        organizational_unit=settings.ROOT_ORG_UNIT,
    )


def _check_years(years: int, low: int, high: int, what: str) -> None:
    if not isinstance(years, int) or isinstance(years, bool) or not low <= years <= high:
        raise InvalidParameter(f"{what} validity must be {low}-{high} years, got {years!r}")


def _validity(years: int) -> Tuple[datetime.datetime, datetime.datetime]:
    start = now_utc().replace(microsecond=0)
    return start, start + datetime.timedelta(days=years * settings.DAYS_PER_YEAR)


def _sign(builder, key, what: str):
    try:
        return builder.sign(key, hashes.SHA256())
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise SigningError(f"could not sign {what}: {exc}") from exc


# ---- SAN handling ----

def classify_san(value: str) -> SanEntry:
    """
    A dotted quad of decimal octets is an IP entry, anything else is DNS.
    Raises InvalidParameter for blank entries and octets above 255.
    """
    value = value.strip()
    if not value:
        raise InvalidParameter("empty subjectAltName entry")
    octets = match_ipv4_literal(value)
    if octets is None:
        return SanEntry(kind=SanKind.DNS, value=value)
    if any(o > 255 for o in octets):
        raise InvalidParameter(f"not a valid IPv4 address: {value}")
    return SanEntry(kind=SanKind.IP, value=".".join(str(o) for o in octets))


def normalize_sans(common_name: str, san_list: Optional[Sequence[str]]) -> List[SanEntry]:
    """Classify entries in input order; with no entries the CN becomes the only DNS SAN."""
    if not san_list:
        return [SanEntry(kind=SanKind.DNS, value=common_name)]
    return [classify_san(v) for v in san_list]


def _general_name(entry: SanEntry) -> x509.GeneralName:
    if entry.kind is SanKind.IP:
        return x509.IPAddress(ipaddress.IPv4Address(entry.value))
    try:
        return x509.DNSName(entry.value)
    except ValueError as exc:
        raise InvalidParameter(f"bad DNS name {entry.value!r}: {exc}") from exc


def san_entries(cert) -> List[SanEntry]:
    """Return the SAN list of a certificate or CSR, in encoded order."""
    try:
        ext = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return []
    out = []
    for gn in ext.value:
        if isinstance(gn, x509.IPAddress):
            out.append(SanEntry(kind=SanKind.IP, value=str(gn.value)))
        elif isinstance(gn, x509.DNSName):
            out.append(SanEntry(kind=SanKind.DNS, value=gn.value))
    return out


# ---- root CA ----

def create_root_ca(name: str, validity_years: int):
    """
    Create a self-signed root CA with a 4096-bit key.
    Returns (private_key, certificate). Nothing is written to disk.
    """
    _check_years(validity_years, settings.ROOT_MIN_YEARS, settings.ROOT_MAX_YEARS, "root CA")
    subject = issuer = build_name(root_subject(name))
    key = generate_rsa_key(settings.ROOT_KEY_SIZE)
    not_before, not_after = _validity(validity_years)

    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
    )
    cert = _sign(builder, key, "root CA certificate")
    log.info("created root CA %r valid until %s", name, not_after.isoformat())
    return key, cert


# ---- leaf issuance ----

def build_csr(key, common_name: str, sans: Sequence[SanEntry]) -> x509.CertificateSigningRequest:
    """CSR with CN subject and the server/client TLS extension set."""
    subject = build_name(DistinguishedName(common_name=common_name))
    builder = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(subject)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=True,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]),
            critical=False,
        )
        .add_extension(
            x509.SubjectAlternativeName([_general_name(e) for e in sans]),
            critical=False,
        )
    )
    try:
        return builder.sign(key, hashes.SHA256())
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise MalformedRequestError(f"could not build signing request for {common_name!r}: {exc}") from exc


def check_request(csr: x509.CertificateSigningRequest) -> None:
    """Raise MalformedRequestError unless the CSR is signed by its own embedded key."""
    if not csr.is_signature_valid:
        raise MalformedRequestError("signing request signature does not match its public key")


def sign_request(csr, ca_key, ca_cert, serial: int, validity_years: int) -> x509.Certificate:
    """
    Sign `csr` with the CA key. Issuer is the CA certificate subject; the
    requested extensions are copied and the chaining extensions are added.
    """
    check_request(csr)
    if not key_matches_cert(ca_key, ca_cert):
        raise SigningError("CA private key does not match the CA certificate")
    not_before, not_after = _validity(validity_years)

    builder = (
        x509.CertificateBuilder()
        .subject_name(csr.subject)
        .issuer_name(ca_cert.subject)
        .public_key(csr.public_key())
        .serial_number(serial)
        .not_valid_before(not_before)
        .not_valid_after(not_after)
    )
    requested = set()
    for ext in csr.extensions:
        builder = builder.add_extension(ext.value, critical=ext.critical)
        requested.add(ext.oid)
    if x509.BasicConstraints.oid not in requested:
        builder = builder.add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
    builder = builder.add_extension(
        x509.SubjectKeyIdentifier.from_public_key(csr.public_key()), critical=False
    ).add_extension(
        x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()), critical=False
    )
    cert = _sign(builder, ca_key, "leaf certificate")
    log.info("signed serial %x for %s", serial, csr.subject.rfc4514_string())
    return cert


def issue_leaf_certificate(ca_key, ca_cert, common_name: str, san_list, validity_years: int, serials):
    """
    Issue a 2048-bit leaf certificate signed by the CA.

    `serials` hands out the serial number (see caforge.storage.serials); it is
    only consulted once the signing request has been built and checked.
    Returns (private_key, csr, certificate).
    """
    if not common_name or not common_name.strip():
        raise InvalidParameter("common name must not be empty")
    _check_years(validity_years, settings.LEAF_MIN_YEARS, settings.LEAF_MAX_YEARS, "certificate")
    if not key_matches_cert(ca_key, ca_cert):
        raise SigningError("CA private key does not match the CA certificate")

    sans = normalize_sans(common_name, san_list)
    log.debug("subjectAltName for %s: %s", common_name, ", ".join(f"{e.kind.value}:{e.value}" for e in sans))
    key = generate_rsa_key(settings.LEAF_KEY_SIZE)
    csr = build_csr(key, common_name, sans)
    check_request(csr)
    serial = serials.next_serial(ca_cert)
    cert = sign_request(csr, ca_key, ca_cert, serial, validity_years)
    return key, csr, cert


# ---- loading / verification ----

def load_cert(pem_bytes: bytes) -> x509.Certificate:
    """Load a PEM-encoded certificate and return an x509.Certificate object."""
    return x509.load_pem_x509_certificate(pem_bytes)


def verify_cert_signed_by_ca(cert: x509.Certificate, ca_cert: x509.Certificate, at: datetime.datetime = None) -> None:
    """
    Verify that `cert` was signed by `ca_cert`.

    Raises:
      - ValueError if issuer does not match CA subject or cert expired/not yet valid
      - TypeError if the CA key type cannot verify signatures
      - InvalidSignature (propagated) if the signature does not verify
    """
    if cert.issuer != ca_cert.subject:
        raise ValueError("certificate issuer does not match CA subject")

    # handles RSA, EC and EdDSA issuers alike
    cert.verify_directly_issued_by(ca_cert)

    now = at or now_utc()
    if now < cert.not_valid_before_utc or now > cert.not_valid_after_utc:
        raise ValueError("certificate is not valid at the current time")


def common_name_of(cert) -> str:
    try:
        return cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value
    except IndexError:
        raise ValueError("certificate has no Common Name (CN)")


def check_cn(cert: x509.Certificate, expected_cn: str) -> None:
    """Check the Common Name (CN) in cert subject matches expected_cn. Raises ValueError on mismatch."""
    cn = common_name_of(cert)
    if cn != expected_cn:
        raise ValueError(f"CN mismatch: expected '{expected_cn}', got '{cn}'")


def cert_fingerprint_hex(cert: x509.Certificate) -> str:
    """Return the SHA-256 fingerprint of the certificate as a hex string."""
    return cert.fingerprint(hashes.SHA256()).hex()
