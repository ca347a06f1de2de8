"""
Order settlement and escrow engine.

This app tracks money from checkout until it is either released to a
store's wallet or refunded to the buyer:

- Checkout validation and payment-intent preparation
- Idempotent payment verification against Flutterwave
- Per-sub-order delivery/escrow state machine
- Scheduled fund release and its query surface
- Store wallet ledger and withdrawal requests

Related modules:
    - settlement.services: Business logic (return ServiceResult)
    - settlement.workers: Celery tasks (scheduler, refunds, reconciliation)
    - settlement.adapters: Flutterwave HTTP adapter
"""
