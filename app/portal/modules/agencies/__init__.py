"""
Agencies module.

Scope:
- Agency CRUD for admins, with per-agency application and revenue totals
- Agency self-service profile (/api/agency/settings)

Each agency is paired with one agency-role User; deleting either side deletes the other.
"""
