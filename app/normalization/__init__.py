"""Recipient contact normalization.

Normalizers return the canonical stored form, or ``None`` when the input
cannot be used to reach the recipient.  They never raise and never log raw
values.
"""
