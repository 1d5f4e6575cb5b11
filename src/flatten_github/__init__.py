"""Export a GitHub repository into a single text or PDF file."""

__version__ = "0.1.0"
