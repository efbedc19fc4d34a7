"""
Documents module.

Uploads are stored inline as base64. An upload also flags the matching tracked
document (passport/transcript/sop/ielts) on the application's payment.
"""
