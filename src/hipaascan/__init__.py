"""hipaascan - HIPAA compliance scanning for source repositories."""

__version__ = "1.0.0"
