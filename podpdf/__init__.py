"""PodPDF: asynchronous document-to-PDF job pipeline."""

__version__ = "1.0.0"
