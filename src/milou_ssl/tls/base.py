"""Common interface of acquisition strategies."""

from typing import Protocol

from milou_ssl.model.certificate import CertificatePair
from milou_ssl.model.config import AcquisitionType


class AcquisitionStrategy(Protocol):
    """Produces a candidate certificate pair for a domain.

    Strategies never touch the live files; the lifecycle controller
    installs what they return.
    """

    acquisition_type: AcquisitionType

    def acquire(self, domain: str) -> CertificatePair:
        """Return a verified candidate pair or raise SSLError."""
        ...
