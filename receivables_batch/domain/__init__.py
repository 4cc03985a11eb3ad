"""Pure batch domain types and schedule evaluation."""
