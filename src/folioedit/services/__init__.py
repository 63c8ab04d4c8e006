"""
FolioEdit - Services Package

PDF, image and stamp artwork services used by the editor.
"""

from folioedit.services.pdf_engine import PdfEngine, get_pdf_engine
from folioedit.services.stamp_assets import CustomStamp, StampAssetProvider, get_stamp_assets

__all__ = [
    "PdfEngine",
    "get_pdf_engine",
    "CustomStamp",
    "StampAssetProvider",
    "get_stamp_assets",
]
