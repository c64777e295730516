"""FileTriage - static identification reports for uploaded binary artifacts"""
__version__ = "1.0.0"
