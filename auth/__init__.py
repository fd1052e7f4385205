"""auth/ -- Credential verification and the session lifecycle for AccessGate.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or rbac/.
api/ and rbac/ import from auth/, not the other way around.
"""
