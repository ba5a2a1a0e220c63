"""
Resolution Engine Test Suite.

- Store and ledger (persistence, immutability, amendments)
- Identity resolution (canonical ids, slugs, update history)
- Publication assembly (membership, regeneration, export)
- Batch pipeline (end-to-end scenarios, retries, tie-breaks)
"""
