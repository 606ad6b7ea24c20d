"""
Access decisions.
"""
