"""
Persistence layer for the procurement workflow.

This package contains:
- ORM entities (Vendor, RFP, RFPVendor, Proposal, EmailLog, AIPrompt)
- Engine and session management
"""
