"""
Service functions used by the domain layer.

This package contains reusable functions for email parsing, SMTP delivery,
IMAP polling, prompt management and AI extraction.
"""

__all__ = ['ai_extraction', 'email', 'mailbox', 'mailer', 'prompts']
