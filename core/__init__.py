"""
Core business logic

This package holds the workflow logic:
- Capabilities: what the acting user may do, computed once per request
- Managers: consent ledger, reviews, nominations, rounds
- Locks: row locks and keyed in-process locks
"""
