"""
Local signal storage.
"""
