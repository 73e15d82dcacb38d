"""Collaborators at the edge of the runtime: transports and script parsing."""
