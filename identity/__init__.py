"""identity/ -- Client for the hosted third-party identity provider.

This is a separate identity system from auth/: its own account namespace,
its own credential storage (held by the provider), and its own token format.
Provider user ids are never mapped to first-party account ids.

Layer rule: identity/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or auth/.
"""
