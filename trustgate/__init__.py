"""TrustGate: staged, policy-checked, auditable mediation of agent changes.

An agent works in an isolated overlay copy of a source tree. Its changes are
collected into a DraftPackage, checked by the capability PolicyEngine and the
dependency Supervisor, reviewed by a human, and only then applied back to the
real source. Every decision lands in a hash-chained AuditLog.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
