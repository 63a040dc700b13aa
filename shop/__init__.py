"""shop/ -- Catalogue items and shopping carts.

Layer rule: shop/ imports only stdlib, third-party libraries and core/.
Ownership and permission decisions live in mutations/, not here.
"""
