"""
Portal settings (singleton row).

General settings, banking details, escalation matrix and payment settings.
Agencies get read-only views; gateway secrets are never sent to them.
"""
