"""Command line interface for state-upgrader."""
