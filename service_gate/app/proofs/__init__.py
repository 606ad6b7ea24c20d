"""
Ownership commitments.
"""
