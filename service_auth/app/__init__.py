"""
Auth package for TaskHub.

Holds the token authentication and resource authorization core shared by
every service:

- app.jwks: signing key cache with rate-limited, single-flight refresh.
- app.validation: signature verification and claims-to-Principal rules.
- app.context: request-scoped authentication context (fail-open gate).
- app.authorization: ownership and role guard (fail-closed).
- app.main: token introspection service.

Design notes:
- Module import must not perform network calls. Key sets are fetched on
  demand, on the first lookup that misses the cache.
- Use the shared/ utilities for logging, metrics and errors.
"""
