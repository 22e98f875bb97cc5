"""
Deferred one-time notifications.

- **reminder_scheduler.py**: idempotent enqueue plus the claim loop
- **reminder_messages.py**: welcome and reminder embeds from configuration
"""
