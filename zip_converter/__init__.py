"""zip_converter: queue zip archives and convert their images to JPEG."""

__version__ = "1.0.0"
