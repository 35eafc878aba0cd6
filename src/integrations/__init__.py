"""
Integrations with external AI services.
"""
