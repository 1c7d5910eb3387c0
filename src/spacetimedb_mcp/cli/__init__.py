"""Command-line interface for the SpacetimeDB bridge."""
