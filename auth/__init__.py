"""auth/ -- Authentication and authorization package for the storefront.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/, shop/, or mutations/.
api/ and mutations/ import from auth/, not the other way around.
"""
