"""
Send a file to a kindle (or any mailbox) as an email attachment over direct SMTP.
"""

__version__ = "1.0.0"
