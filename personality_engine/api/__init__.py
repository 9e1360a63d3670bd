"""HTTP API for the Personality Engine."""
