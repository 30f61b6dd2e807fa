"""HTTP and WebSocket surface for the Jadwa engagement engine."""
