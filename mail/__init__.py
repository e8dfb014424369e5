"""mail/ -- Outbound notification delivery (password recovery links)."""
