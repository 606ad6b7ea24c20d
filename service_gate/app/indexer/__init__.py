"""
Ledger indexer access for the gate.
"""
