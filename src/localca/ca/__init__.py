"""Certificate Authority module for localca.

This module provides:
- Key pair generation and PEM marshalling (RSA and ECDSA)
- Root and intermediate CA installation and loading
- Leaf certificate generation and CSR signing
- CRL assembly and PKCS#12 export
"""

from localca.ca.certificate_generator import CertificateGenerator
from localca.ca.crl import CRLBuilder
from localca.ca.hierarchy import CAHierarchyBuilder
from localca.ca.keys import KeyPair

__all__ = ["CAHierarchyBuilder", "CRLBuilder", "CertificateGenerator", "KeyPair"]
