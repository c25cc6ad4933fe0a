"""Prometheus metrics for the consent protocol."""

from prometheus_client import Counter

consent_requests_total = Counter(
    "carelink_consent_requests_total",
    "Access requests by outcome",
    ["outcome"],
)

consent_verifications_total = Counter(
    "carelink_consent_verifications_total",
    "Code redemptions by outcome",
    ["outcome"],
)

emergency_overrides_total = Counter(
    "carelink_emergency_overrides_total",
    "Emergency override grants issued",
    ["hospital_id"],
)

audit_write_failures_total = Counter(
    "carelink_audit_write_failures_total",
    "Audit entries that could not be written",
    ["action_type"],
)

insecure_otp_fallbacks_total = Counter(
    "carelink_insecure_otp_fallbacks_total",
    "Codes produced by the non-cryptographic fallback generator",
)
