"""suppliers/ -- Supplier application lifecycle and scoped document access.

Layer rule: suppliers/ may import from auth/, core/ and notifications/.
It does NOT import from api/.
"""
