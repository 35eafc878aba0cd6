"""
Domain layer for the procurement workflow.

This layer contains:
- Data models (inbound emails, processing results)
- Business logic (RFP drafting and sending, proposal pipeline, evaluation)
- CRUD services for vendors, RFPs, proposals and prompts
"""
