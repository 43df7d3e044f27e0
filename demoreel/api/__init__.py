"""HTTP API for browsing audio and serving track data."""
