"""
Database loaders for the reconciliation transaction and the batch jobs.

Every loader takes the caller's AsyncSession and never commits on its own:
the caller owns the transaction boundary (one item, one candidate, one row).
"""
