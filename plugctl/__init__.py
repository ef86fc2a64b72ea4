"""Client session layer for a message-based remote device-control protocol."""
