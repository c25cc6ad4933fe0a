"""One-time code issuer.

Codes are drawn uniformly from ``[0, 10**length)`` with the ``secrets``
module and zero-padded. If the cryptographic source fails the issuer raises;
the non-cryptographic generator is only used when the deployment explicitly
opts in through ``otp_allow_insecure_fallback``, and every such code is
logged and counted.
"""

import random
import secrets
from typing import Optional

from carelink.config import Settings, get_settings
from carelink.core.exceptions import OtpGenerationError, ValidationError
from carelink.utils.logging import get_logger
from carelink.utils.metrics import insecure_otp_fallbacks_total

logger = get_logger(__name__)

MIN_LENGTH = 4
MAX_LENGTH = 10


class OtpIssuer:
    """Generates numeric one-time codes."""

    def __init__(self, settings: Optional[Settings] = None):
        """Initialize the issuer."""
        self.settings = settings or get_settings()
        self._fallback = random.Random()

    def generate(self, length: Optional[int] = None) -> str:
        """Return a zero-padded numeric code of ``length`` digits.

        Raises:
            ValidationError: length outside 4..10
            OtpGenerationError: the CSPRNG failed and fallback is not enabled
        """
        length = self.settings.otp_length if length is None else length
        if not MIN_LENGTH <= length <= MAX_LENGTH:
            raise ValidationError(
                f"Code length must be between {MIN_LENGTH} and {MAX_LENGTH}",
                field="length",
            )

        upper = 10**length
        try:
            value = secrets.randbelow(upper)
        except (OSError, NotImplementedError) as e:
            if not self.settings.otp_allow_insecure_fallback:
                logger.error("otp_entropy_unavailable", error=str(e))
                raise OtpGenerationError(
                    "Cryptographically strong random source unavailable"
                ) from e
            insecure_otp_fallbacks_total.inc()
            logger.warning(
                "otp_insecure_fallback_used",
                error=str(e),
                setting="otp_allow_insecure_fallback",
            )
            value = self._fallback.randrange(upper)

        return str(value).zfill(length)
