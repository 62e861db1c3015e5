"""HTTP API for the space weather monitor."""
