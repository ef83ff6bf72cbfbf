"""
Per-user shopping cart.

Responsibilities:
- Lazily create one cart per user.
- Add / update / remove / clear line items with price snapshots.
- Keep ``total_price`` equal to the sum of line subtotals after every save.
- Serialize read-modify-write per user and reject stale versions.
"""
