"""Client side: local record store, persistence backends, remote gateway and CLI."""
