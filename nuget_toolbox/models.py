"""Core value records shared across nuget-toolbox components."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

TYPE_KINDS = ("class", "interface", "struct", "enum")


@dataclass(frozen=True)
class TypeRecord:
    """An externally visible type."""

    namespace: str
    name: str
    kind: str

    @property
    def full_name(self) -> str:
        return f"{self.namespace}.{self.name}" if self.namespace else self.name

    def sort_key(self) -> Tuple[str, str]:
        return (self.namespace, self.name)


@dataclass(frozen=True)
class ParameterRecord:
    """A method parameter as reflected from metadata."""

    name: str
    type: str


@dataclass(frozen=True)
class MethodRecord:
    """A public method with its rendered signature and optional documentation."""

    type: str
    method: str
    signature: str
    parameters: Tuple[ParameterRecord, ...] = ()
    return_type: str = "System.Void"
    summary: Optional[str] = None
    params: Optional[Dict[str, str]] = None
    returns: Optional[str] = None

    def sort_key(self) -> Tuple[str, str, str]:
        return (self.type, self.method, self.signature)


@dataclass(frozen=True)
class DocumentationEntry:
    """Documentation attached to one member in an XML documentation file."""

    summary: Optional[str] = None
    params: Dict[str, str] = field(default_factory=dict)
    returns: Optional[str] = None


@dataclass(frozen=True)
class DiffItem:
    """A breaking change between two API sets."""

    type: str
    method: str
    reason: str
    signature: Optional[str] = None


@dataclass(frozen=True)
class DiffResult:
    """Structural difference between two versions of a package API."""

    package_id: str
    version_from: str
    version_to: str
    tfm: str
    breaking: Tuple[DiffItem, ...] = ()
    added: Tuple[TypeRecord, ...] = ()
    removed: Tuple[TypeRecord, ...] = ()

    @property
    def compatible(self) -> bool:
        return not self.breaking


@dataclass(frozen=True)
class DirectDependency:
    """A dependency declared in the package nuspec."""

    target_framework: str
    package_id: str
    version_range: str


@dataclass
class PackageInfo:
    """Resolution result for a package identity."""

    package_id: str
    version: str
    resolved: bool
    source: Optional[str] = None
    nupkg_path: Optional[str] = None
    tfms: Optional[List[str]] = None
    dependencies: Optional[List[DirectDependency]] = None
