"""rbac/ -- Role/permission graph, permission resolution and the authorization guard.

Layer rule: rbac/ may import from auth/ and core/. It does NOT import from api/.
api/ imports from rbac/, not the other way around.
"""
