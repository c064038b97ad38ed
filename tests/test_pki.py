# tests/test_pki.py
import datetime
import types

import pytest
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from caforge.common.errors import InvalidParameter, KeyGenerationError, MalformedRequestError, SigningError
from caforge.common.models import SanEntry, SanKind
from caforge.crypto import pki
from caforge.crypto.keys import generate_rsa_key


def _attr(name, oid):
    return name.get_attributes_for_oid(oid)[0].value


def dns(v):
    return SanEntry(kind=SanKind.DNS, value=v)


def ip(v):
    return SanEntry(kind=SanKind.IP, value=v)


# ---- root CA ----

def test_root_is_self_signed(root_ca):
    key, cert = root_ca
    assert cert.subject == cert.issuer
    assert _attr(cert.subject, NameOID.COMMON_NAME) == "TestCA"
    assert _attr(cert.subject, NameOID.ORGANIZATION_NAME) == "TestCA"
    assert _attr(cert.subject, NameOID.ORGANIZATIONAL_UNIT_NAME) == "IT"
    assert _attr(cert.subject, NameOID.COUNTRY_NAME) == "US"
    # own key verifies the signature
    key.public_key().verify(cert.signature, cert.tbs_certificate_bytes,
                            padding.PKCS1v15(), cert.signature_hash_algorithm)


def test_root_key_and_extensions(root_ca):
    key, cert = root_ca
    assert key.key_size == 4096
    assert cert.signature_hash_algorithm.name == "sha256"
    bc = cert.extensions.get_extension_for_class(x509.BasicConstraints)
    assert bc.value.ca is True and bc.critical
    ku = cert.extensions.get_extension_for_class(x509.KeyUsage).value
    assert ku.key_cert_sign and ku.crl_sign


def test_root_validity_is_years_times_365_days(root_ca):
    _, cert = root_ca
    delta = cert.not_valid_after_utc - cert.not_valid_before_utc
    assert delta == datetime.timedelta(days=365)


def test_root_validity_upper_bound():
    _, cert = pki.create_root_ca("LongLived", 50)
    delta = cert.not_valid_after_utc - cert.not_valid_before_utc
    assert abs(delta - datetime.timedelta(days=50 * 365)) <= datetime.timedelta(days=1)


@pytest.mark.parametrize("years", [0, 51, -3])
def test_root_years_out_of_range(years):
    with pytest.raises(InvalidParameter):
        pki.create_root_ca("TestCA", years)


def test_key_generation_failure_is_reported():
    with pytest.raises(KeyGenerationError):
        generate_rsa_key(512)


# ---- SAN handling ----

def test_classify_san():
    assert pki.classify_san("192.168.1.100") == ip("192.168.1.100")
    assert pki.classify_san("www.example.com") == dns("www.example.com")
    assert pki.classify_san("1.2.3").kind is SanKind.DNS
    assert pki.classify_san("localhost").kind is SanKind.DNS


@pytest.mark.parametrize("bad", ["", "   ", "300.1.1.1", "10.0.0.256"])
def test_classify_san_rejects(bad):
    with pytest.raises(InvalidParameter):
        pki.classify_san(bad)


def test_normalize_sans_defaults_to_cn():
    assert pki.normalize_sans("api.example.com", []) == [dns("api.example.com")]
    assert pki.normalize_sans("10.0.0.1", None) == [dns("10.0.0.1")]


def test_normalize_sans_keeps_order():
    got = pki.normalize_sans("x", ["b.example.com", "10.1.2.3", "a.example.com"])
    assert got == [dns("b.example.com"), ip("10.1.2.3"), dns("a.example.com")]


# ---- leaf issuance ----

def test_leaf_signed_by_ca(root_ca, leaf):
    _, ca_cert = root_ca
    key, csr, cert = leaf
    assert key.key_size == 2048
    assert cert.issuer == ca_cert.subject
    assert _attr(cert.subject, NameOID.COMMON_NAME) == "svc.test"
    pki.verify_cert_signed_by_ca(cert, ca_cert)
    pki.check_cn(cert, "svc.test")


def test_leaf_san_order(leaf):
    _, csr, cert = leaf
    assert pki.san_entries(cert) == [dns("svc.test"), ip("10.0.0.5")]
    assert pki.san_entries(csr) == [dns("svc.test"), ip("10.0.0.5")]


def test_leaf_extensions(root_ca, leaf):
    ca_key, _ = root_ca
    _, csr, cert = leaf
    assert csr.is_signature_valid
    ku = cert.extensions.get_extension_for_class(x509.KeyUsage).value
    assert ku.digital_signature and ku.key_encipherment and ku.data_encipherment
    assert not ku.key_cert_sign
    eku = cert.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
    assert list(eku) == [ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]
    assert cert.extensions.get_extension_for_class(x509.BasicConstraints).value.ca is False
    aki = cert.extensions.get_extension_for_class(x509.AuthorityKeyIdentifier).value
    assert aki.key_identifier == x509.SubjectKeyIdentifier.from_public_key(ca_key.public_key()).digest


def test_leaf_validity(leaf):
    _, _, cert = leaf
    delta = cert.not_valid_after_utc - cert.not_valid_before_utc
    assert delta == datetime.timedelta(days=365)


def test_leaf_without_san_gets_cn(root_ca, serials):
    ca_key, ca_cert = root_ca
    _, _, cert = pki.issue_leaf_certificate(ca_key, ca_cert, "api.company.com", [], 1, serials)
    assert pki.san_entries(cert) == [dns("api.company.com")]


def test_sequential_serials_differ(root_ca, serials):
    ca_key, ca_cert = root_ca
    _, _, first = pki.issue_leaf_certificate(ca_key, ca_cert, "a.test", [], 1, serials)
    _, _, second = pki.issue_leaf_certificate(ca_key, ca_cert, "b.test", [], 1, serials)
    assert first.serial_number != second.serial_number
    assert second.serial_number == first.serial_number + 1
    assert serials.last_serial(ca_cert) == second.serial_number


def test_leaf_rejects_mismatched_ca_key(root_ca, serials):
    _, ca_cert = root_ca
    other = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    with pytest.raises(SigningError):
        pki.issue_leaf_certificate(other, ca_cert, "svc.test", [], 1, serials)
    assert serials.last_serial(ca_cert) is None


def test_sign_request_rejects_mismatched_ca_key(root_ca, leaf):
    _, ca_cert = root_ca
    _, csr, _ = leaf
    other = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    with pytest.raises(SigningError):
        pki.sign_request(csr, other, ca_cert, 1, 1)


@pytest.mark.parametrize("cn,years", [("", 1), ("   ", 1), ("svc.test", 0), ("svc.test", 31)])
def test_leaf_bad_parameters(root_ca, serials, cn, years):
    ca_key, ca_cert = root_ca
    with pytest.raises(InvalidParameter):
        pki.issue_leaf_certificate(ca_key, ca_cert, cn, [], years, serials)


def test_check_request_rejects_bad_signature():
    with pytest.raises(MalformedRequestError):
        pki.check_request(types.SimpleNamespace(is_signature_valid=False))


def test_verify_rejects_foreign_ca(leaf):
    _, _, cert = leaf
    _, foreign = pki.create_root_ca("TestCA", 1)
    # same subject, different key
    with pytest.raises(InvalidSignature):
        pki.verify_cert_signed_by_ca(cert, foreign)


def test_verify_rejects_expired(root_ca, leaf):
    _, ca_cert = root_ca
    _, _, cert = leaf
    later = cert.not_valid_after_utc + datetime.timedelta(days=1)
    with pytest.raises(ValueError):
        pki.verify_cert_signed_by_ca(cert, ca_cert, at=later)
