"""
Point-of-sale collaborator models.

The refund saga reads and mutates these records but does not own their
lifecycle: branches, customers, the product catalogue with its stock
counters, and completed sales with their line items.
"""
