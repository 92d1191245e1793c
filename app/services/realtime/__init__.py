"""Real-time conversation updates over Redis pub/sub."""
