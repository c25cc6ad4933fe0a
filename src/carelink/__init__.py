"""CareLink Consent.

Cross-institution consent protocol for medical record access: hospitals request
access to a patient's records, the patient confirms with a one-time code, and
the confirmation becomes a permanent, audited grant.
"""

__version__ = "0.1.0"
