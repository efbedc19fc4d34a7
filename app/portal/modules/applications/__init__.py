"""
Applications module.

Scope:
- Agency submission and edits; each new application gets a Payment
- Admin review, status changes (related documents follow the status), stats
- Admission-form PDF generation
"""
