"""
Feature modules live under this package.

Each module owns its models, service functions and route blueprints, and reuses
platform primitives (auth, RBAC, audit, events, DB session).
"""
