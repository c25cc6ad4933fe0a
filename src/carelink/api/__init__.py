"""HTTP API for CareLink Consent."""
