"""
TTL caches for the gate.
"""
