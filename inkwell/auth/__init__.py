"""
Authentication for the core service.

Design goals:
- Social login only (Google, GitHub); no passwords stored.
- Sessions persisted in MongoDB, referenced by a signed HttpOnly cookie.
- Mounted as a raw ASGI app so CORS and preflight are handled before routing.
"""
