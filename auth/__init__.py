"""auth/ -- First-party accounts and session tokens for GymCoach.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or identity/.
api/ imports from auth/, not the other way around.
"""
