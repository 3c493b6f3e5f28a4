"""
docscanner - Clean document photos and assemble them into a PDF

1. Upload photographed document pages
2. Clean each photo with an image generation model (orientation, shadows,
   deskew, white background, tight crop)
3. Lay the cleaned images out one per A4 page
4. Download the finished PDF
"""

__version__ = "1.0.0"

from .config import ScannerConfig
from .pipeline import DocumentPipeline, PipelineResult
from .session import ProcessingState, Session

__all__ = ["DocumentPipeline", "PipelineResult", "ProcessingState", "ScannerConfig", "Session"]
