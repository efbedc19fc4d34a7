"""
Reports module (admin-only).

Scope:
- Data export as CSV, JSON or XLSX
- HTML table reports per entity
- Summary reports (monthly, agency performance, college applications, financial)
"""
