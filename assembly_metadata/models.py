"""
Data models for assembly metadata.

This module contains the records produced by the extractor: the ModuleInfo
record handed to callers, the value types it is built from, and the
ExtractionResult wrapper that reports success or a typed failure.
"""

import hashlib
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .exceptions import AttributeDecodeError, ExtractionError

FRAMEWORK_PREFIX = ".NETFramework,Version=v"


class ModuleKind(Enum):
    """Module kind as implied by the file extension."""

    UNKNOWN = "unknown"
    EXECUTABLE = "exe"
    LIBRARY = "dll"


@dataclass(frozen=True)
class ModuleVersion:
    """Four-part assembly version."""

    major: int = 0
    minor: int = 0
    build: int = 0
    revision: int = 0

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.build}.{self.revision}"


def public_key_token(key_or_token: Optional[bytes]) -> Optional[str]:
    """
    Return the hex public key token for a public key or token blob.

    An 8 byte blob is already a token. Anything longer is a full public key,
    whose token is the last 8 bytes of its SHA-1 digest in reverse order.
    """
    if not key_or_token:
        return None
    if len(key_or_token) == 8:
        return key_or_token.hex()
    digest = hashlib.sha1(key_or_token).digest()
    return digest[-8:][::-1].hex()


def format_full_name(name: str, version: ModuleVersion, culture: str = "",
                     token: Optional[str] = None) -> str:
    """Format an assembly display name the way the runtime prints it."""
    return (f"{name}, Version={version}, "
            f"Culture={culture or 'neutral'}, "
            f"PublicKeyToken={token or 'null'}")


def framework_version_for(target_framework: Optional[str]) -> Optional[str]:
    """Strip the .NET Framework prefix; other framework families give None."""
    if target_framework is None or not target_framework.startswith(FRAMEWORK_PREFIX):
        return None
    return target_framework[len(FRAMEWORK_PREFIX):]


@dataclass(frozen=True)
class ModuleReference:
    """A dependency declared in the AssemblyRef table."""

    name: str
    version: ModuleVersion
    culture: str = ""
    public_key_token: Optional[str] = None

    @property
    def full_name(self) -> str:
        return format_full_name(self.name, self.version, self.culture,
                                self.public_key_token)

    def __str__(self) -> str:
        return self.full_name

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'version': str(self.version),
            'culture': self.culture,
            'public_key_token': self.public_key_token,
        }


@dataclass(frozen=True)
class FileTimes:
    """Filesystem timestamps, in local time."""

    creation_time: datetime
    last_write_time: datetime
    last_access_time: datetime


@dataclass(frozen=True)
class RawAttribute:
    """An assembly-level custom attribute as stored in the metadata tables.

    ``signature`` is the constructor's method signature blob and ``blob`` is
    the attribute value blob; neither is decoded yet.
    """

    type_name: Optional[str]
    signature: bytes = b""
    blob: bytes = b""


@dataclass(frozen=True)
class ModuleMetadata:
    """Identity, attributes and references read from a module's tables."""

    name: str
    version: ModuleVersion
    runtime_version: str
    culture: str = ""
    public_key: bytes = b""
    attributes: Tuple[RawAttribute, ...] = ()
    references: Tuple[ModuleReference, ...] = ()


@dataclass(frozen=True)
class AttributeValues:
    """Optional strings decoded from the known custom attributes."""

    title: Optional[str] = None
    description: Optional[str] = None
    company: Optional[str] = None
    guid: Optional[str] = None
    copyright: Optional[str] = None
    product: Optional[str] = None
    trademark: Optional[str] = None
    target_framework: Optional[str] = None
    debug_info: Optional[str] = None


class ModuleInfo:
    """Descriptive metadata of a single .NET module.

    Every field except ``id`` is fixed at construction time. ``id`` is left
    to the caller for its own bookkeeping.
    """

    def __init__(self, location: str, kind: ModuleKind, metadata: ModuleMetadata,
                 attributes: AttributeValues, file_times: FileTimes, id: int = 0):
        """
        Initialize a ModuleInfo instance.

        Args:
            location: Absolute path the metadata was loaded from
            kind: Kind derived from the file extension
            metadata: Identity and references read from the metadata tables
            attributes: Values decoded from the known custom attributes
            file_times: Filesystem timestamps captured at load time
            id: Caller-assigned identifier
        """
        self.id = id
        self._location = location
        self._kind = kind
        self._name = metadata.name
        self._version = metadata.version
        self._runtime_version = metadata.runtime_version
        self._full_name = format_full_name(metadata.name, metadata.version,
                                           metadata.culture,
                                           public_key_token(metadata.public_key))
        self._file_times = file_times
        self._attributes = attributes
        # Both framework fields come from the same attribute value.
        self._target_framework = attributes.target_framework
        self._framework_version = framework_version_for(attributes.target_framework)
        self._references = tuple(metadata.references)
        self._references_as_text = os.linesep.join(r.name for r in self._references)

    @property
    def kind(self) -> ModuleKind:
        return self._kind

    @property
    def name(self) -> str:
        return self._name

    @property
    def full_name(self) -> str:
        return self._full_name

    @property
    def location(self) -> str:
        return self._location

    @property
    def creation_time(self) -> datetime:
        return self._file_times.creation_time

    @property
    def last_write_time(self) -> datetime:
        return self._file_times.last_write_time

    @property
    def last_access_time(self) -> datetime:
        return self._file_times.last_access_time

    @property
    def version(self) -> ModuleVersion:
        return self._version

    @property
    def runtime_version(self) -> str:
        return self._runtime_version

    @property
    def title(self) -> Optional[str]:
        return self._attributes.title

    @property
    def description(self) -> Optional[str]:
        return self._attributes.description

    @property
    def company(self) -> Optional[str]:
        return self._attributes.company

    @property
    def guid(self) -> Optional[str]:
        return self._attributes.guid

    @property
    def copyright(self) -> Optional[str]:
        return self._attributes.copyright

    @property
    def product(self) -> Optional[str]:
        return self._attributes.product

    @property
    def trademark(self) -> Optional[str]:
        return self._attributes.trademark

    @property
    def debug_info(self) -> Optional[str]:
        return self._attributes.debug_info

    @property
    def target_framework(self) -> Optional[str]:
        return self._target_framework

    @property
    def framework_version(self) -> Optional[str]:
        return self._framework_version

    @property
    def references(self) -> Tuple[ModuleReference, ...]:
        return self._references

    @property
    def references_as_text(self) -> str:
        return self._references_as_text

    @property
    def name_and_version(self) -> str:
        """Single-line label, e.g. ``Sample.dll   v1.2.0.0   fw:4.7.2``."""
        label = f"{self._name}.{self._kind.value}   v{self._version} "
        if self._framework_version is not None:
            label += "  fw:" + self._framework_version
        return label

    def __str__(self) -> str:
        """Return the assembly's full name."""
        return self._full_name

    def __repr__(self) -> str:
        return (f"ModuleInfo(id={self.id}, name='{self._name}', "
                f"version='{self._version}', kind={self._kind.name})")

    def to_dict(self) -> dict:
        """Convert the record to a dictionary of plain values."""
        return {
            'id': self.id,
            'kind': self._kind.value,
            'name': self._name,
            'full_name': self._full_name,
            'location': self._location,
            'creation_time': self.creation_time.isoformat(),
            'last_write_time': self.last_write_time.isoformat(),
            'last_access_time': self.last_access_time.isoformat(),
            'version': str(self._version),
            'runtime_version': self._runtime_version,
            'title': self.title,
            'description': self.description,
            'company': self.company,
            'guid': self.guid,
            'copyright': self.copyright,
            'product': self.product,
            'trademark': self.trademark,
            'target_framework': self._target_framework,
            'framework_version': self._framework_version,
            'debug_info': self.debug_info,
            'references': [r.to_dict() for r in self._references],
            'references_as_text': self._references_as_text,
        }


@dataclass
class ExtractionResult:
    """Outcome of one extraction: a module or a typed error, never both."""

    path: str
    module: Optional[ModuleInfo] = None
    error: Optional[ExtractionError] = None
    warnings: List[AttributeDecodeError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.error is None and self.module is not None

    def to_dict(self) -> Dict[str, object]:
        """Convert result to dictionary for JSON serialization."""
        result: Dict[str, object] = {
            "path": self.path,
            "success": self.success,
        }
        if self.error:
            result["error"] = str(self.error)
            result["error_type"] = type(self.error).__name__
        if self.module:
            result["module"] = self.module.to_dict()
        if self.warnings:
            result["warnings"] = [str(w) for w in self.warnings]
        return result

