"""OpenTelemetry metrics for the local CA."""

from opentelemetry import metrics

meter = metrics.get_meter("localca")

# ============================================================================
# CA hierarchy
# ============================================================================

ca_installs_total = meter.create_counter(
    name="localca_ca_installs_total",
    description="Total CA hierarchy installations",
    unit="1",
)

# ============================================================================
# Leaf certificates
# ============================================================================

certificates_issued_total = meter.create_counter(
    name="localca_certificates_issued_total",
    description="Total leaf certificates signed by the intermediate CA",
    unit="1",
)

certificate_generation_duration = meter.create_histogram(
    name="localca_certificate_generation_duration_seconds",
    description="Leaf certificate generation duration in seconds",
    unit="s",
)

csr_rejections_total = meter.create_counter(
    name="localca_csr_rejections_total",
    description="Total CSRs rejected before issuance",
    unit="1",
)

pkcs12_exports_total = meter.create_counter(
    name="localca_pkcs12_exports_total",
    description="Total PKCS#12 bundles written",
    unit="1",
)

# ============================================================================
# Revocation
# ============================================================================

certificates_revoked_total = meter.create_counter(
    name="localca_certificates_revoked_total",
    description="Total certificates revoked",
    unit="1",
)

crls_generated_total = meter.create_counter(
    name="localca_crls_generated_total",
    description="Total CRLs signed",
    unit="1",
)

crl_entries = meter.create_histogram(
    name="localca_crl_entries",
    description="Revoked entries per generated CRL",
    unit="1",
)


class CAMetrics:
    """Facade for CA metrics with proper labels."""

    def record_ca_installed(self, algorithm: str) -> None:
        """Record a CA install. Labels: algorithm=RSA-2048|ECDSA-secp256r1|..."""
        ca_installs_total.add(1, {"algorithm": algorithm})

    def record_certificate_issued(self, certificate_class: str, duration_seconds: float) -> None:
        """Record leaf issuance. Labels: class=tls_server|client_auth|smime|from_csr"""
        certificates_issued_total.add(1, {"class": certificate_class})
        certificate_generation_duration.record(duration_seconds, {"class": certificate_class})

    def record_csr_rejected(self, reason: str) -> None:
        """Record CSR rejection. Labels: reason=malformed|bad_signature"""
        csr_rejections_total.add(1, {"reason": reason})

    def record_pkcs12_exported(self, encrypted: bool) -> None:
        pkcs12_exports_total.add(1, {"encrypted": str(encrypted).lower()})

    def record_certificate_revoked(self, reason: str) -> None:
        """Record certificate revocation. Labels: reason=<CRLReason name>"""
        certificates_revoked_total.add(1, {"reason": reason})

    def record_crl_generated(self, entry_count: int) -> None:
        crls_generated_total.add(1)
        crl_entries.record(entry_count)


# Singleton instance
ca_metrics = CAMetrics()
