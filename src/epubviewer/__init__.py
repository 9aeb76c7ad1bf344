"""EPUB Viewer - self-hosted reader backend for EPUB, PDF and saved web articles."""

__version__ = "0.1.0"
