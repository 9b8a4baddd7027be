"""auth/ -- Identity, session credential and role-gating package.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/, suppliers/, or notifications/.
api/ and suppliers/ import from auth/, not the other way around.
"""
