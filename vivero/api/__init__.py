"""HTTP and WebSocket surface for Vivero."""
