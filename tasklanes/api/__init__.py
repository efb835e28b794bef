"""HTTP and WebSocket surface for tasklanes."""
