"""
Orders placed from a cart at checkout.

Responsibilities:
- Snapshot cart line items (price fixed at order time) into an Order.
- Clear the source cart after the order is written; retries never duplicate.
- Enforce the order status state machine.
"""
