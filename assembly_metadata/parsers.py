"""
Parsers for .NET module metadata.

This module reads a module's file timestamps and its CLI metadata tables
and assembles them into a ModuleInfo record. Metadata is read statically
with dnfile; the module is never loaded for execution.
"""

import os
from datetime import datetime
from typing import Any, List, Optional, Tuple

import dnfile
import pefile

from .attributes import decode_attributes
from .exceptions import ExtractionError, InvalidModuleError, NotFoundError
from .models import (
    ExtractionResult, FileTimes, ModuleInfo, ModuleKind, ModuleMetadata,
    ModuleReference, ModuleVersion, RawAttribute, public_key_token,
)

EXTENSION_KINDS = {
    '.exe': ModuleKind.EXECUTABLE,
    '.dll': ModuleKind.LIBRARY,
}


def _heap_value(item: Any) -> Any:
    """Unwrap a dnfile heap item; plain values pass through."""
    return getattr(item, 'value', item)


def _text(item: Any) -> str:
    value = _heap_value(item)
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).decode('utf-8', errors='replace')
    return str(value).rstrip('\x00')


def _blob(item: Any) -> bytes:
    value = _heap_value(item)
    if value is None:
        return b""
    return bytes(value)


def _table_name(index: Any) -> Optional[str]:
    return getattr(getattr(index, 'table', None), 'name', None)


def _row_version(row: Any) -> ModuleVersion:
    return ModuleVersion(row.MajorVersion, row.MinorVersion,
                         row.BuildNumber, row.RevisionNumber)


def _qualified_name(type_row: Any) -> str:
    namespace = _text(type_row.TypeNamespace)
    name = _text(type_row.TypeName)
    return f"{namespace}.{name}" if namespace else name


class MetadataReader:
    """Reads identity, custom attributes and references from CLI tables."""

    @staticmethod
    def read(data: bytes, path: str = "") -> ModuleMetadata:
        """
        Parse module bytes into a ModuleMetadata record.

        Args:
            data: Raw bytes of the module file
            path: Path of the module, used in error messages

        Returns:
            ModuleMetadata: Identity, attributes and references

        Raises:
            InvalidModuleError: If the bytes are not a .NET module or the
                identity metadata is missing
        """
        try:
            pe = dnfile.dnPE(data=data)
        except pefile.PEFormatError as e:
            raise InvalidModuleError(f"not a PE image ({e})", path) from e
        except Exception as e:
            raise InvalidModuleError(f"error parsing PE image: {e}", path) from e

        try:
            return MetadataReader._read_tables(pe, path)
        except ExtractionError:
            raise
        except Exception as e:
            raise InvalidModuleError(f"error reading CLI metadata: {e}", path) from e
        finally:
            pe.close()

    @staticmethod
    def _read_tables(pe: Any, path: str) -> ModuleMetadata:
        net = getattr(pe, 'net', None)
        if net is None or getattr(net, 'mdtables', None) is None:
            raise InvalidModuleError("no CLI metadata (not a .NET module)", path)

        runtime_version = ""
        metadata = getattr(net, 'metadata', None)
        if metadata is not None and getattr(metadata, 'struct', None) is not None:
            runtime_version = _text(metadata.struct.Version)
        if not runtime_version:
            raise InvalidModuleError("metadata root has no runtime version", path)

        tables = net.mdtables
        assembly_table = getattr(tables, 'Assembly', None)
        if assembly_table is None or not assembly_table.rows:
            raise InvalidModuleError("no assembly manifest", path)
        assembly = assembly_table.rows[0]
        name = _text(assembly.Name)
        if not name:
            raise InvalidModuleError("assembly manifest has no name", path)

        return ModuleMetadata(
            name=name,
            version=_row_version(assembly),
            runtime_version=runtime_version,
            culture=_text(assembly.Culture),
            public_key=_blob(assembly.PublicKey),
            attributes=tuple(MetadataReader.read_attributes(tables)),
            references=tuple(MetadataReader.read_references(tables)),
        )

    @staticmethod
    def read_references(tables: Any) -> List[ModuleReference]:
        """Return the AssemblyRef rows in table order."""
        table = getattr(tables, 'AssemblyRef', None)
        if table is None:
            return []
        return [
            ModuleReference(
                name=_text(row.Name),
                version=_row_version(row),
                culture=_text(row.Culture),
                public_key_token=public_key_token(_blob(row.PublicKey)),
            )
            for row in table.rows
        ]

    @staticmethod
    def read_attributes(tables: Any) -> List[RawAttribute]:
        """Return the assembly-level CustomAttribute rows in table order."""
        table = getattr(tables, 'CustomAttribute', None)
        if table is None:
            return []
        attributes = []
        for row in table.rows:
            if _table_name(row.Parent) != 'Assembly':
                continue
            type_name, signature = MetadataReader._resolve_constructor(tables, row.Type)
            attributes.append(RawAttribute(type_name, signature, _blob(row.Value)))
        return attributes

    @staticmethod
    def _resolve_constructor(tables: Any, index: Any) -> Tuple[Optional[str], bytes]:
        """
        Resolve a CustomAttributeType index to (attribute type name, ctor signature).

        An unresolvable type yields a None name, which no known attribute
        matches.
        """
        constructor = getattr(index, 'row', None)
        if constructor is None:
            return None, b""
        signature = _blob(getattr(constructor, 'Signature', None))
        table = _table_name(index)

        if table == 'MemberRef':
            parent = constructor.Class
            parent_row = getattr(parent, 'row', None)
            if parent_row is None or _table_name(parent) not in ('TypeRef', 'TypeDef'):
                return None, signature
            return _qualified_name(parent_row), signature

        if table == 'MethodDef':
            owner = MetadataReader._method_owner(tables, index.row_index)
            return (_qualified_name(owner) if owner is not None else None), signature

        return None, signature

    @staticmethod
    def _method_owner(tables: Any, method_index: int) -> Optional[Any]:
        type_table = getattr(tables, 'TypeDef', None)
        if type_table is None:
            return None
        for type_row in type_table.rows:
            for method in getattr(type_row, 'MethodList', None) or []:
                if getattr(method, 'row_index', None) == method_index:
                    return type_row
        return None


class AssemblyParser:
    """Builds ModuleInfo records from module files."""

    @staticmethod
    def read_file_times(path: str) -> FileTimes:
        """
        Read the filesystem timestamps of a module file.

        Raises:
            NotFoundError: If the path is missing, inaccessible or not a file
        """
        try:
            st = os.stat(path)
        except FileNotFoundError as e:
            raise NotFoundError("file not found", path) from e
        except OSError as e:
            raise NotFoundError(f"cannot access file: {e.strerror or e}", path) from e

        if not os.path.isfile(path):
            raise NotFoundError("not a regular file", path)

        # st_birthtime is only reported on some platforms
        created = getattr(st, 'st_birthtime', st.st_ctime)
        return FileTimes(
            creation_time=datetime.fromtimestamp(created),
            last_write_time=datetime.fromtimestamp(st.st_mtime),
            last_access_time=datetime.fromtimestamp(st.st_atime),
        )

    @staticmethod
    def read_bytes(path: str) -> bytes:
        try:
            with open(path, 'rb') as f:
                return f.read()
        except OSError as e:
            raise NotFoundError(f"cannot read file: {e.strerror or e}", path) from e

    @staticmethod
    def classify_kind(path: str) -> ModuleKind:
        """Classify a module by its file extension alone."""
        extension = os.path.splitext(path)[1].lower()
        return EXTENSION_KINDS.get(extension, ModuleKind.UNKNOWN)

    @staticmethod
    def parse(path: str) -> ExtractionResult:
        """
        Extract a module's metadata and keep attribute decode failures.

        Raises:
            NotFoundError: If the file cannot be found or read
            InvalidModuleError: If the file is not a loadable .NET module
        """
        location = os.path.abspath(path)
        file_times = AssemblyParser.read_file_times(location)
        metadata = MetadataReader.read(AssemblyParser.read_bytes(location), location)
        kind = AssemblyParser.classify_kind(location)
        values, warnings = decode_attributes(metadata.attributes, location)
        module = ModuleInfo(location, kind, metadata, values, file_times)
        return ExtractionResult(path=path, module=module, warnings=warnings)


def load_module_info(path: str) -> ModuleInfo:
    """
    Load a module's metadata, raising on failure.

    Raises:
        NotFoundError: If the file cannot be found or read
        InvalidModuleError: If the file is not a loadable .NET module
    """
    return AssemblyParser.parse(path).module


def extract(path: str) -> ExtractionResult:
    """
    Extract a module's metadata into an ExtractionResult.

    NotFound and InvalidModule failures are returned in ``error`` rather
    than raised; attribute decode failures are listed in ``warnings``.
    """
    try:
        return AssemblyParser.parse(path)
    except (NotFoundError, InvalidModuleError) as e:
        return ExtractionResult(path=path, error=e)
