"""relkit: resumable, reversible multi-package releases."""

__version__ = "0.1.0"
