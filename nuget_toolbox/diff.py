"""Structural comparison of two exported API sets."""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from .logging import get_logger
from .models import DiffItem, DiffResult, MethodRecord, TypeRecord

REASON_REMOVED = "method removed"
REASON_MODIFIED = "signature modified"

MethodKey = Tuple[str, str, str]


class ApiDiffAnalyzer:
    """Classifies removed and re-signed methods between two versions as breaking.

    Signatures are compared as exact strings. A method whose overload changed
    shows up both as removed and as modified, and a method moved to another
    type is a removal plus an addition.
    """

    def __init__(self) -> None:
        self.logger = get_logger("diff")

    def compare(
        self,
        package_id: str,
        methods_from: Optional[Iterable[MethodRecord]],
        methods_to: Optional[Iterable[MethodRecord]],
        version_from: str,
        version_to: str,
        tfm: str,
    ) -> DiffResult:
        self.logger.info("Comparing %s vs %s for %s", version_from, version_to, package_id)
        base = _index(methods_from or ())
        new = _index(methods_to or ())

        removed_items: List[DiffItem] = [
            DiffItem(type=m.type, method=m.method, reason=REASON_REMOVED, signature=m.signature)
            for key, m in base.items()
            if key not in new
        ]

        added: List[TypeRecord] = []
        seen_types = set()
        for key, method in new.items():
            if key in base or method.type in seen_types:
                continue
            seen_types.add(method.type)
            added.append(_type_record(method.type))

        breaking = removed_items + self._modified(base, new)
        breaking.sort(key=_item_order)
        removed_items.sort(key=_item_order)
        added.sort(key=lambda record: record.full_name)

        self.logger.info(
            "Found %d breaking changes, %d additions", len(breaking), len(added)
        )
        return DiffResult(
            package_id=package_id,
            version_from=version_from,
            version_to=version_to,
            tfm=tfm,
            breaking=tuple(breaking),
            added=tuple(added),
            removed=tuple(_type_record(item.type) for item in removed_items),
        )

    @staticmethod
    def _modified(
        base: Dict[MethodKey, MethodRecord], new: Dict[MethodKey, MethodRecord]
    ) -> List[DiffItem]:
        new_groups = {(m.type, m.method) for m in new.values()}
        base_groups: Dict[Tuple[str, str], List[MethodRecord]] = defaultdict(list)
        for method in base.values():
            base_groups[(method.type, method.method)].append(method)

        modified: List[DiffItem] = []
        for group, methods in base_groups.items():
            if group not in new_groups:
                continue
            for method in methods:
                if _key(method) not in new:
                    modified.append(
                        DiffItem(
                            type=method.type,
                            method=method.method,
                            reason=REASON_MODIFIED,
                            signature=method.signature,
                        )
                    )
        return modified


def _key(method: MethodRecord) -> MethodKey:
    return (method.type, method.method, method.signature)


def _index(methods: Iterable[MethodRecord]) -> Dict[MethodKey, MethodRecord]:
    index: Dict[MethodKey, MethodRecord] = {}
    for method in methods:
        index.setdefault(_key(method), method)
    return index


def _item_order(item: DiffItem) -> Tuple[str, str]:
    return (item.type, item.signature or "")


def _type_record(full_name: str) -> TypeRecord:
    namespace, _, name = full_name.rpartition(".")
    return TypeRecord(namespace=namespace, name=name, kind="class")


__all__ = ["ApiDiffAnalyzer", "REASON_MODIFIED", "REASON_REMOVED"]
