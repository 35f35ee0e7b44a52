"""Matrix bridge: commands, message dispatch and runtime."""
