from enum import IntEnum, StrEnum


class KeyAlgorithm(StrEnum):
    RSA = "rsa"
    ECDSA = "ecdsa"


class CertificateClass(StrEnum):
    """Leaf certificate classes, each with a fixed key usage profile."""

    TLS_SERVER = "tls_server"
    CLIENT_AUTH = "client_auth"
    SMIME = "smime"
    FROM_CSR = "from_csr"


class SubjectInputType(StrEnum):
    DNS = "dns"
    IP = "ip"
    EMAIL = "email"


class RevocationReason(IntEnum):
    """RFC 5280 CRLReason codes. Value 7 is unassigned."""

    UNSPECIFIED = 0
    KEY_COMPROMISE = 1
    CA_COMPROMISE = 2
    AFFILIATION_CHANGED = 3
    SUPERSEDED = 4
    CESSATION_OF_OPERATION = 5
    CERTIFICATE_HOLD = 6
    REMOVE_FROM_CRL = 8
    PRIVILEGE_WITHDRAWN = 9
    AA_COMPROMISE = 10
