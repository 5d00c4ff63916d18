"""
Code Extraction & Repair Module
"""

from .extraction import DEFAULT_FILE_PATH, extract, extract_files
from .models import GeneratedArtifact, GeneratedFile
from .repair import balance_braces, close_attribute_quotes, repair, repair_code

__all__ = [
    "DEFAULT_FILE_PATH",
    "extract",
    "extract_files",
    "GeneratedArtifact",
    "GeneratedFile",
    "balance_braces",
    "close_attribute_quotes",
    "repair",
    "repair_code",
]
