"""
Assembly Metadata Package

Extracts descriptive metadata from compiled .NET modules (executables and
libraries): identity, file timestamps, build attributes and references.
Metadata is read statically; modules are never executed.
"""

from .models import (
    ModuleInfo, ModuleKind, ModuleVersion, ModuleReference, ExtractionResult,
)
from .exceptions import (
    ExtractionError, NotFoundError, InvalidModuleError, AttributeDecodeError,
)
from .parsers import AssemblyParser, MetadataReader, extract, load_module_info

__version__ = "1.0.0"
__author__ = "Assembly Metadata Extractor"

__all__ = [
    "ModuleInfo",
    "ModuleKind",
    "ModuleVersion",
    "ModuleReference",
    "ExtractionResult",
    "ExtractionError",
    "NotFoundError",
    "InvalidModuleError",
    "AttributeDecodeError",
    "AssemblyParser",
    "MetadataReader",
    "extract",
    "load_module_info",
]
