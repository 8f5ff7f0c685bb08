# cli.py
# Argument parser and entrypoints wired to the CA and certificate services.

import argparse
import logging
import sys
from pathlib import Path

from shared.config import settings
from shared.logging import setup_logging
from shared.metrics import setup_metrics
from shared.tracing import setup_tracing

from localca.domain.errors import LocalCAError
from localca.domain.states import RevocationReason
from localca.repository.store import CAStore
from localca.services.ca_service import CAService
from localca.services.certificate_service import CertificateService

logger = logging.getLogger(__name__)


def resolve_ca_dir(ca_dir: str | None = None) -> Path:
    """--ca-dir, then the CAROOT setting, then ~/.localca."""
    if ca_dir:
        return Path(ca_dir).expanduser().absolute()
    if settings.CAROOT:
        return Path(settings.CAROOT).expanduser().absolute()
    return Path.home() / settings.DEFAULT_CA_DIR_NAME


def parse_serial(value: str) -> int:
    """Decimal serial, falling back to hexadecimal (optionally 0x-prefixed)."""
    text = value.strip().lower()
    try:
        serial = int(text, 10)
    except ValueError:
        try:
            serial = int(text.removeprefix("0x"), 16)
        except ValueError:
            raise argparse.ArgumentTypeError(f"invalid serial number: {value!r}") from None
    if serial < 0:
        raise argparse.ArgumentTypeError("serial number must be non-negative")
    return serial


def parse_reason(value: str) -> RevocationReason:
    try:
        return RevocationReason(int(value))
    except ValueError:
        pass
    try:
        return RevocationReason[value.strip().upper().replace("-", "_")]
    except KeyError:
        raise argparse.ArgumentTypeError(f"invalid revocation reason: {value!r}") from None


def fmt_table(rows):
    if not rows:
        return ""
    widths = [max(len(str(c)) for c in col) for col in zip(*rows)]

    def line(cells):
        return "  ".join(str(c).ljust(w) for c, w in zip(cells, widths))

    out = [line(rows[0]), "  ".join("-" * w for w in widths)]
    out += [line(r) for r in rows[1:]]
    return "\n".join(out)


def build_parser():
    p = argparse.ArgumentParser(
        prog="localca",
        description="Local certificate authority: root + intermediate CA, leaf certificates and CRLs",
    )
    p.add_argument("--ca-dir", default=None, help="CA directory (default: $CAROOT or ~/.localca)")
    p.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL setting)")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_install = sub.add_parser("install", help="Create a root CA and an intermediate CA")
    p_install.add_argument("--force", action="store_true", help="Overwrite an existing CA")
    p_install.set_defaults(func=cmd_install)

    p_issue = sub.add_parser("issue", help="Issue a certificate for domains, IPs or email addresses")
    p_issue.add_argument("inputs", nargs="+", help="DNS names, IP addresses or email addresses")
    p_issue.add_argument("--client", action="store_true", help="Client authentication certificate")
    p_issue.add_argument("--ecdsa", action="store_true", help="Use an ECDSA P-256 key")
    p_issue.add_argument("--cert-file", default=None, help="Certificate output path")
    p_issue.add_argument("--key-file", default=None, help="Private key output path")
    p_issue.add_argument("--pkcs12", action="store_true", help="Also write a PKCS#12 bundle")
    p_issue.add_argument("--p12-file", default=None, help="PKCS#12 output path")
    p_issue.add_argument("--p12-password", default=None, help="PKCS#12 password (default: none)")
    p_issue.set_defaults(func=cmd_issue)

    p_sign = sub.add_parser("sign", help="Issue a certificate from a CSR")
    p_sign.add_argument("--csr", required=True, help="PEM certificate signing request")
    p_sign.add_argument("--cert-file", default=None, help="Certificate output path")
    p_sign.set_defaults(func=cmd_sign)

    p_revoke = sub.add_parser("revoke", help="Revoke a certificate by serial number")
    p_revoke.add_argument("serial", type=parse_serial, help="Serial number (decimal or hex)")
    p_revoke.add_argument(
        "--reason",
        type=parse_reason,
        default=RevocationReason.UNSPECIFIED,
        help="CRLReason code or name, e.g. 1 or key_compromise (default: 0)",
    )
    p_revoke.set_defaults(func=cmd_revoke)

    p_crl = sub.add_parser("crl", help="Generate a CRL signed by the intermediate CA")
    p_crl.add_argument("--output", default=None, help="CRL output path (default: <ca-dir>/crl.pem)")
    p_crl.set_defaults(func=cmd_crl)

    p_status = sub.add_parser("status", help="Show the CA hierarchy and counters")
    p_status.set_defaults(func=cmd_status)

    return p


def _store(args) -> CAStore:
    return CAStore(resolve_ca_dir(args.ca_dir))


def cmd_install(args):
    store = _store(args)
    hierarchy = CAService(store).install(force=args.force)
    print(f"CA installed in {store.directory}")
    print(f"Root CA expires:         {hierarchy.root.certificate.not_valid_after_utc:%Y-%m-%d}")
    print(f"Intermediate CA expires: {hierarchy.intermediate.certificate.not_valid_after_utc:%Y-%m-%d}")


def cmd_issue(args):
    result = CertificateService(_store(args)).issue(
        args.inputs,
        client=args.client,
        use_ecdsa=args.ecdsa,
        cert_file=args.cert_file,
        key_file=args.key_file,
        pkcs12=args.pkcs12,
        p12_file=args.p12_file,
        p12_password=args.p12_password,
    )
    print(f"Certificate generated: {result.cert_path} (serial {result.issued.serial_number})")
    print(f"Private key generated: {result.key_path}")
    if result.p12_path:
        print(f"PKCS#12 file generated: {result.p12_path}")


def cmd_sign(args):
    result = CertificateService(_store(args)).issue_from_csr(args.csr, cert_file=args.cert_file)
    print(f"Certificate generated: {result.cert_path} (serial {result.issued.serial_number})")


def cmd_revoke(args):
    entry = CAService(_store(args)).revoke(args.serial, args.reason)
    print(f"Certificate {entry.serial} revoked ({entry.reason.name.lower()})")


def cmd_crl(args):
    crl, path = CAService(_store(args)).generate_crl(args.output)
    print(f"CRL generated: {path} ({len(crl)} revoked)")


def cmd_status(args):
    st = CAService(_store(args)).status()
    if not st.installed:
        print(f"No CA installed in {st.ca_dir}")
        return
    rows = [["FIELD", "VALUE"]]
    rows += [
        ["ca_dir", str(st.ca_dir)],
        ["algorithm", st.algorithm or ""],
        ["root", st.root_subject or ""],
        ["root_not_after", st.root_not_after.isoformat() if st.root_not_after else ""],
        ["intermediate", st.intermediate_subject or ""],
        ["intermediate_not_after", st.intermediate_not_after.isoformat() if st.intermediate_not_after else ""],
        ["next_serial", str(st.next_serial)],
        ["revoked", str(st.revoked_count)],
    ]
    print(fmt_table(rows))


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level)
    if settings.OTEL_CONSOLE_EXPORT:
        setup_tracing(settings.APP_NAME)
        setup_metrics(settings.APP_NAME)

    try:
        args.func(args)
    except LocalCAError as e:
        logger.debug("command_failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
