"""Execution-free .NET metadata reading."""

from .context import MetadataContext, PlatformType, ResolvedType
from .definitions import (
    AssemblyMetadata,
    EventDefinition,
    FieldDefinition,
    MemberDefinition,
    MethodDefinition,
    PropertyDefinition,
    TypeDefinition,
    TypeName,
)
from .reader import MetadataFormatError, MetadataImage, open_assembly
from .signatures import SignatureError

__all__ = [
    "AssemblyMetadata",
    "EventDefinition",
    "FieldDefinition",
    "MemberDefinition",
    "MetadataContext",
    "MetadataFormatError",
    "MetadataImage",
    "MethodDefinition",
    "PlatformType",
    "PropertyDefinition",
    "ResolvedType",
    "SignatureError",
    "TypeDefinition",
    "TypeName",
    "open_assembly",
]
