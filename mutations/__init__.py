"""mutations/ -- Write-operation handlers and the guarded read queries.

Every handler takes a CallerContext as its first argument and either returns
a domain object (or status dict) or raises a core.errors.StorefrontError.
Handlers hold no state between calls; all state lives in the stores.
"""
