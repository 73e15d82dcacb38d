"""ProtoFlow CLI: run mockup apps and action scripts from the terminal."""

__version__ = "0.1.0"
