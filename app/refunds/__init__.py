"""
Refunds app for reversing sold POS line items.

This app handles:
- Refund records and their django-fsm status
- The atomic refund procedure and the resumable manual saga
- Inventory restocking at product, variant and branch level
- Customer account credits through an auditable ledger
- Reconciliation of half-applied refunds

Related apps:
    - pos: Sales, items, products, stock and customers being reversed

Usage:
    from refunds.services import RefundOrchestrator, RefundRequest

    result = RefundOrchestrator.process_refund(request)
    if not result.success:
        print(result.error_code, result.error)
"""
