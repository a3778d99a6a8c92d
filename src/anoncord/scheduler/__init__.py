"""
Background timers for the relay.

- **expiry_scheduler.py**: Min-heap timer that expires pending submissions once
  their lifetime is up. Supports cancellation when a moderator decides first.

- **periodic_scheduler.py**: Fixed-interval loop used for refreshing the
  moderator registry and reloading the block list.
"""
