"""Authorization and audit core for the back-office console."""

__version__ = "0.4.0"
