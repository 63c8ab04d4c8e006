"""
FolioEdit - Python package for editing paginated documents

This package provides the document/page state engine behind a visual PDF
editor: an in-memory page model, page operations (reorder, delete, rotate,
merge, split), overlay placement and an asynchronous render cache.
"""

__version__ = "1.0.0"
__author__ = "FolioEdit Team"
__license__ = "GPL-3.0"
