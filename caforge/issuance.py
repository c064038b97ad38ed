# caforge/issuance.py
"""
End-to-end operations behind the command line:
 - create_ca(CreateCAParams)   -> written paths (<name>.key/.crt[/.pfx])
 - issue_cert(IssueCertParams) -> written paths (<stem>.key/.csr/.crt[/.pfx])

Either every output file of an operation is written or none is.
"""
import logging
import os
import re

import cryptography
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from pydantic import ValidationError

from caforge.common import settings
from caforge.common.errors import InvalidParameter, PrerequisiteMissing, SigningError
from caforge.common.utils import derive_file_stem
from caforge.crypto import pki
from caforge.crypto.keys import key_matches_cert, load_private_key, private_key_pem
from caforge.crypto.pkcs12 import export_pkcs12
from caforge.storage.artifacts import StagedOutput
from caforge.storage.serials import SerialStore

log = logging.getLogger(__name__)


def check_prerequisites() -> None:
    """Raise PrerequisiteMissing if the installed cryptography is too old."""
    parts = re.findall(r"\d+", cryptography.__version__)[:2]
    found = tuple(int(p) for p in parts)
    if found < settings.MIN_CRYPTOGRAPHY_VERSION:
        need = ".".join(str(p) for p in settings.MIN_CRYPTOGRAPHY_VERSION)
        raise PrerequisiteMissing(f"cryptography>={need} is required, found {cryptography.__version__}")


def make_params(model, **fields):
    """Build a parameter model, reporting validation problems as InvalidParameter."""
    try:
        return model(**fields)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'value'}: {err['msg']}" for err in exc.errors()
        )
        raise InvalidParameter(problems) from exc


def read_file(path: str, what: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as exc:
        raise InvalidParameter(f"cannot read {what} {path}: {exc}") from exc


def load_ca_material(key_path: str, cert_path: str):
    """Load and pair-check the CA key and certificate. Returns (key, cert)."""
    key_pem = read_file(key_path, "CA key")
    cert_pem = read_file(cert_path, "CA certificate")
    try:
        ca_key = load_private_key(key_pem)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise SigningError(f"CA key {key_path} is unreadable: {exc}") from exc
    try:
        ca_cert = x509.load_pem_x509_certificate(cert_pem)
    except ValueError as exc:
        raise SigningError(f"CA certificate {cert_path} is unreadable: {exc}") from exc
    if not key_matches_cert(ca_key, ca_cert):
        raise SigningError(f"CA key {key_path} does not match CA certificate {cert_path}")
    return ca_key, ca_cert


def create_ca(params) -> list:
    check_prerequisites()
    key, cert = pki.create_root_ca(params.name, params.years)

    with StagedOutput(params.out_dir) as out:
        out.add(f"{params.name}.key", private_key_pem(key), private=True)
        out.add(f"{params.name}.crt", cert.public_bytes(serialization.Encoding.PEM))
        if params.pfx.requested:
            out.add(f"{params.name}.pfx",
                    export_pkcs12(key, cert, params.pfx, friendly_name=params.name),
                    private=True)
        paths = out.commit()
    log.info("root CA %r written to %s", params.name, os.path.abspath(params.out_dir))
    return paths


def issue_cert(params, serials: SerialStore = None) -> list:
    check_prerequisites()
    stem = derive_file_stem(params.common_name)
    if not stem:
        raise InvalidParameter(f"common name {params.common_name!r} yields an empty file name")
    protected = {os.path.realpath(params.ca_key), os.path.realpath(params.ca_cert)}
    for ext in (".key", ".csr", ".crt", ".pfx"):
        target = os.path.realpath(os.path.join(params.out_dir, stem + ext))
        if target in protected:
            raise InvalidParameter(f"output {target} would overwrite the CA's own files", stage="output")

    ca_key, ca_cert = load_ca_material(params.ca_key, params.ca_cert)
    if serials is None:
        serials = SerialStore.for_ca_cert(params.ca_cert)
    key, csr, cert = pki.issue_leaf_certificate(
        ca_key, ca_cert, params.common_name, params.sans, params.years, serials
    )

    with StagedOutput(params.out_dir) as out:
        out.add(f"{stem}.key", private_key_pem(key), private=True)
        out.add(f"{stem}.csr", csr.public_bytes(serialization.Encoding.PEM))
        out.add(f"{stem}.crt", cert.public_bytes(serialization.Encoding.PEM))
        if params.pfx.requested:
            out.add(f"{stem}.pfx",
                    export_pkcs12(key, cert, params.pfx, chain_cert=ca_cert, friendly_name=params.common_name),
                    private=True)
        paths = out.commit()
    log.info("issued %s (serial %x) into %s", params.common_name, cert.serial_number,
             os.path.abspath(params.out_dir))
    return paths
