"""
Credential ownership resolution.
"""
