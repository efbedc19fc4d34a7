"""
Colleges & courses catalogue.

Admins manage colleges and their courses; agencies read the active ones when
submitting applications.
"""
