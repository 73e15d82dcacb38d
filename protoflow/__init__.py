"""ProtoFlow: declarative action/state runtime for interactive mobile-app mockups."""

__version__ = "0.1.0"
