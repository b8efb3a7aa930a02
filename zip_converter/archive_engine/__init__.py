"""Archive Engine - conversion core with no Qt dependencies.

This package provides:
- Zip access (reader, writer)
- Image → JPEG conversion (converter, pyvips)
- The three-phase conversion pipeline (pipeline)
- report.json generation (report)

Usage:
    from zip_converter.archive_engine import CancelToken, ConversionPipeline

    pipeline = ConversionPipeline()
    result = pipeline.run("/path/to/photos.zip", CancelToken(), on_progress=print)
"""

from .pipeline import CancelToken, ConversionPipeline, PipelineOptions, PipelineResult

__all__ = ["CancelToken", "ConversionPipeline", "PipelineOptions", "PipelineResult"]
