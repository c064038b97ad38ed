# tests/conftest.py
import pytest
from cryptography.hazmat.primitives import serialization

from caforge.common import settings
from caforge.crypto import pki
from caforge.crypto.keys import private_key_pem
from caforge.storage.serials import SerialStore


@pytest.fixture(autouse=True)
def _serials_next_to_ca(monkeypatch):
    monkeypatch.setattr(settings, "SERIAL_DB_PATH", None)


@pytest.fixture(scope="session")
def root_ca():
    """(key, cert) of a 1-year root CA named TestCA, shared by the session."""
    return pki.create_root_ca("TestCA", 1)


@pytest.fixture(scope="session")
def ca_files(tmp_path_factory, root_ca):
    """root_ca written as TestCA.key / TestCA.crt; returns (key_path, cert_path)."""
    key, cert = root_ca
    d = tmp_path_factory.mktemp("ca")
    key_path = d / "TestCA.key"
    cert_path = d / "TestCA.crt"
    key_path.write_bytes(private_key_pem(key))
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    return str(key_path), str(cert_path)


@pytest.fixture
def serials(tmp_path):
    return SerialStore(str(tmp_path / "serials.db"))


@pytest.fixture
def leaf(root_ca, serials):
    """(key, csr, cert) for svc.test issued by root_ca."""
    ca_key, ca_cert = root_ca
    return pki.issue_leaf_certificate(ca_key, ca_cert, "svc.test", ["svc.test", "10.0.0.5"], 1, serials)
