"""
Users module (admin-only).

Scope:
- User CRUD and password reset
- Keeps the linked Agency in step with the user's role
"""
