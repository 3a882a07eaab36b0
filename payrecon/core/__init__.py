"""
Core package for payrecon.

Subpackages:
- policies: Override policy contracts and the registry built from them
- recon: Monthly aggregation and cross-source comparison
- audit: Audit trail ingestion, storage and grouped summaries
"""
