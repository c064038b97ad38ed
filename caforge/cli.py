# caforge/cli.py
"""
Command line entry points:
  create-ca   --name CN [--out DIR] [--years 1..50] [--pfx-password [VALUE]]
  issue-cert  --ca-key PATH --ca-cert PATH --cn NAME [--san NAME]... [--out DIR] [--years 1..30] [--pfx-password [VALUE]]
  verify-cert --ca-cert PATH --cert PATH [--cn NAME]

--pfx-password given without a value exports an unprotected bundle; leaving
the option out skips the bundle.
"""
import argparse
import logging
import sys
import time

from cryptography.exceptions import InvalidSignature

from caforge.common import settings
from caforge.common.errors import CAError, InvalidParameter, VerificationError
from caforge.common.models import CreateCAParams, IssueCertParams, PfxPassword
from caforge.crypto import pki
from caforge.issuance import create_ca, issue_cert, make_params, read_file

log = logging.getLogger("caforge.cli")

EXIT_OK = 0


def setup_logging(level: str = "INFO") -> None:
    lvl = getattr(logging, str(level).upper(), logging.INFO)
    logging.basicConfig(
        level=lvl,
        format="%(asctime)sZ %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        stream=sys.stderr,
    )
    logging.Formatter.converter = time.gmtime


def _common_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--out", default=settings.OUT_DIR, help="output directory (default: %(default)s)")
    p.add_argument("--log-level", default=settings.LOG_LEVEL, help="DEBUG, INFO, WARNING or ERROR")
    p.add_argument("--pfx-password", nargs="?", const="", default=None, metavar="VALUE",
                   help="also write a PKCS#12 bundle; without VALUE the bundle is unprotected")


def build_create_ca_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="create-ca", description="Create a self-signed root CA.")
    p.add_argument("--name", required=True, help="CA common name, also used for file names")
    p.add_argument("--years", type=int, default=settings.ROOT_DEFAULT_YEARS,
                   help=f"validity in years, {settings.ROOT_MIN_YEARS}-{settings.ROOT_MAX_YEARS} (default: %(default)s)")
    _common_options(p)
    return p


def build_issue_cert_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="issue-cert", description="Issue a TLS certificate signed by a root CA.")
    p.add_argument("--ca-key", required=True)
    p.add_argument("--ca-cert", required=True)
    p.add_argument("--cn", required=True, help="certificate common name, e.g. api.example.com")
    p.add_argument("--san", action="append", default=[], metavar="NAME_OR_IP",
                   help="subjectAltName entry, repeatable; defaults to the common name")
    p.add_argument("--years", type=int, default=settings.LEAF_DEFAULT_YEARS,
                   help=f"validity in years, {settings.LEAF_MIN_YEARS}-{settings.LEAF_MAX_YEARS} (default: %(default)s)")
    _common_options(p)
    return p


def build_verify_cert_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="verify-cert", description="Check a certificate against its issuing CA.")
    p.add_argument("--ca-cert", required=True)
    p.add_argument("--cert", required=True)
    p.add_argument("--cn", help="also require this subject common name")
    p.add_argument("--log-level", default=settings.LOG_LEVEL)
    return p


def _fail(exc: CAError) -> int:
    log.debug("operation failed", exc_info=True)
    print(f"error: {exc}", file=sys.stderr)
    return exc.exit_code


def create_ca_main(argv=None) -> int:
    args = build_create_ca_parser().parse_args(argv)
    setup_logging(args.log_level)
    try:
        params = make_params(CreateCAParams, name=args.name, out_dir=args.out, years=args.years,
                             pfx=PfxPassword.of(args.pfx_password))
        paths = create_ca(params)
    except CAError as exc:
        return _fail(exc)
    print("Wrote:", *paths)
    print(f"Keep {paths[0]} private.")
    return EXIT_OK


def issue_cert_main(argv=None) -> int:
    args = build_issue_cert_parser().parse_args(argv)
    setup_logging(args.log_level)
    try:
        params = make_params(IssueCertParams, ca_key=args.ca_key, ca_cert=args.ca_cert, common_name=args.cn,
                             sans=args.san, out_dir=args.out, years=args.years,
                             pfx=PfxPassword.of(args.pfx_password))
        paths = issue_cert(params)
    except CAError as exc:
        return _fail(exc)
    print("Wrote:", *paths)
    return EXIT_OK


def verify_cert_main(argv=None) -> int:
    args = build_verify_cert_parser().parse_args(argv)
    setup_logging(args.log_level)
    try:
        try:
            ca_cert = pki.load_cert(read_file(args.ca_cert, "CA certificate"))
            cert = pki.load_cert(read_file(args.cert, "certificate"))
        except ValueError as exc:
            raise InvalidParameter(f"not a PEM certificate: {exc}") from exc
        try:
            pki.verify_cert_signed_by_ca(cert, ca_cert)
            if args.cn is not None:
                pki.check_cn(cert, args.cn)
        except InvalidSignature as exc:
            raise VerificationError("signature does not verify against the CA public key") from exc
        except (ValueError, TypeError) as exc:
            raise VerificationError(str(exc)) from exc
    except CAError as exc:
        return _fail(exc)

    print("OK:", cert.subject.rfc4514_string())
    print("  issuer:     ", cert.issuer.rfc4514_string())
    print("  serial:     ", format(cert.serial_number, "x"))
    print("  valid until:", cert.not_valid_after_utc.isoformat())
    for entry in pki.san_entries(cert):
        print(f"  san:         {entry.kind.value}:{entry.value}")
    print("  sha256:     ", pki.cert_fingerprint_hex(cert))
    return EXIT_OK
