"""
Payments module.

Scope:
- One Payment per Application, with commission at the agency's rate
- Backfill jobs (sync/migrate) for applications missing a payment
- Agency-reported payments, receipts and admin verification
- Offline (UPI / bank transfer) payment records
"""
