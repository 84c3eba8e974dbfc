"""Workbench web server: the HTTP entry point for the browser workbench."""

__version__ = '0.1.0'
