from rotation_cert.models.base import CertificationResult, CertifierBase
from rotation_cert.models.drs import DRSCertifier

__all__ = ["CertificationResult", "CertifierBase", "DRSCertifier"]
