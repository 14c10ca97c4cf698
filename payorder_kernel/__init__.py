"""
Payment Order Kernel

Batches liquidated medical-honorarium invoices into bank payment orders and
routes each order through a site-scoped, strictly sequential approval chain:
- Transactional, idempotent batch creation
- Approval chain snapshotted at creation time
- Single-actor-per-level decisions with row-level serialization
- Uniform audit columns and soft-delete lifecycle
"""

__version__ = "0.1.0"
