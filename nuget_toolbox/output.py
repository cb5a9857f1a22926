"""Wire models and JSON/JSONL serialization for command results.

Field names are camelCase and ``None`` values are omitted, so optional
documentation fields and empty diff sections disappear from the output.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, TypeAdapter
from pydantic.alias_generators import to_camel

from .models import DiffItem, DiffResult, MethodRecord, PackageInfo, TypeRecord


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class TypeInfo(WireModel):
    namespace: str
    name: str
    kind: str


class ParameterInfo(WireModel):
    name: str
    type: str


class MethodInfo(WireModel):
    type: str
    method: str
    signature: str
    summary: Optional[str] = None
    params: Optional[Dict[str, str]] = None
    returns: Optional[str] = None
    parameters: List[ParameterInfo] = []
    return_type: str


class DiffItemInfo(WireModel):
    type: str
    method: str
    reason: str
    signature: Optional[str] = None


class DiffInfo(WireModel):
    package_id: str
    version_from: str
    version_to: str
    tfm: str
    breaking: Optional[List[DiffItemInfo]] = None
    added: Optional[List[TypeInfo]] = None
    removed: Optional[List[TypeInfo]] = None
    compatible: bool


class DependencyInfo(WireModel):
    target_framework: str
    package_id: str
    version_range: str


class PackageDescription(WireModel):
    package_id: str
    version: str
    resolved: bool
    source: Optional[str] = None
    nupkg_path: Optional[str] = None
    tfms: Optional[List[str]] = None
    dependencies: Optional[List[DependencyInfo]] = None


Payload = Union[WireModel, Sequence[WireModel]]
_DOCUMENTS = TypeAdapter(List[Dict[str, Any]])


def type_info(record: TypeRecord) -> TypeInfo:
    return TypeInfo(namespace=record.namespace, name=record.name, kind=record.kind)


def method_info(record: MethodRecord) -> MethodInfo:
    return MethodInfo(
        type=record.type,
        method=record.method,
        signature=record.signature,
        summary=record.summary,
        params=dict(record.params) if record.params else None,
        returns=record.returns,
        parameters=[ParameterInfo(name=p.name, type=p.type) for p in record.parameters],
        return_type=record.return_type,
    )


def diff_info(result: DiffResult) -> DiffInfo:
    return DiffInfo(
        package_id=result.package_id,
        version_from=result.version_from,
        version_to=result.version_to,
        tfm=result.tfm,
        breaking=[_diff_item(item) for item in result.breaking] or None,
        added=[type_info(record) for record in result.added] or None,
        removed=[type_info(record) for record in result.removed] or None,
        compatible=result.compatible,
    )


def package_description(info: PackageInfo) -> PackageDescription:
    dependencies = None
    if info.dependencies is not None:
        dependencies = [
            DependencyInfo(
                target_framework=dep.target_framework,
                package_id=dep.package_id,
                version_range=dep.version_range,
            )
            for dep in info.dependencies
        ]
    return PackageDescription(
        package_id=info.package_id,
        version=info.version,
        resolved=info.resolved,
        source=info.source,
        nupkg_path=info.nupkg_path,
        tfms=list(info.tfms) if info.tfms is not None else None,
        dependencies=dependencies,
    )


def _diff_item(item: DiffItem) -> DiffItemInfo:
    return DiffItemInfo(type=item.type, method=item.method, reason=item.reason, signature=item.signature)


def to_json(payload: Payload, indent: int = 2) -> str:
    """Serialize a model or a list of models as one JSON document."""
    json_indent = indent if indent > 0 else None
    if isinstance(payload, WireModel):
        return payload.model_dump_json(by_alias=True, exclude_none=True, indent=json_indent)
    items = [item.model_dump(by_alias=True, exclude_none=True, mode="json") for item in payload]
    return _DOCUMENTS.dump_json(items, indent=json_indent).decode("utf-8")


def to_jsonl(items: Iterable[WireModel]) -> str:
    """One compact JSON object per line."""
    return "\n".join(item.model_dump_json(by_alias=True, exclude_none=True) for item in items)


def write_result(content: str, output_path: Optional[Path], logger: logging.Logger) -> None:
    """Write ``content`` to ``output_path``, or to stdout when no path is given."""
    if output_path is not None:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(content + "\n", encoding="utf-8")
        logger.info("Output written to %s", output_path)
        return
    sys.stdout.write(content + "\n")
    sys.stdout.flush()


__all__ = [
    "DiffInfo",
    "MethodInfo",
    "PackageDescription",
    "TypeInfo",
    "diff_info",
    "method_info",
    "package_description",
    "to_json",
    "to_jsonl",
    "type_info",
    "write_result",
]
