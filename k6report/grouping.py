from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from .models import ApiCallRecord, ErrorDetail, SuccessPolicy, status_is_200

KeyFunc = Callable[[ApiCallRecord], str]


# =========================
# KEY EXTRACTION
# =========================

def api_key(record: ApiCallRecord) -> str:
    """Endpoint identity; differently labelled calls to one endpoint share a key."""
    return f"{record.method} {record.url}"


def scenario_key(record: ApiCallRecord) -> str:
    return record.scenario


def page_key(record: ApiCallRecord) -> str:
    return record.page


def vu_key(record: ApiCallRecord) -> str:
    return str(record.vu)


def overall_key(record: ApiCallRecord) -> str:
    return "*"


DIMENSIONS: Dict[str, KeyFunc] = {
    "api": api_key,
    "scenario": scenario_key,
    "page": page_key,
    "vu": vu_key,
}


def _display_name(key_of: KeyFunc, record: ApiCallRecord, key: str) -> str:
    if key_of is api_key:
        return record.api_name
    return key


# =========================
# ACCUMULATION
# =========================

@dataclass
class GroupAccumulator:
    key: str
    name: str
    method: Optional[str] = None
    url: Optional[str] = None
    count: int = 0
    durations: List[float] = field(default_factory=list)
    errors: List[ErrorDetail] = field(default_factory=list)

    def add(self, record: ApiCallRecord, success: bool) -> None:
        self.count += 1
        self.durations.append(record.duration_ms)
        if not success:
            self.errors.append(ErrorDetail.from_record(record))


class Grouper:
    """Incremental grouping of records along one dimension.

    Groups are created on the first record for a key and kept in first-seen
    order, so identical input always yields identical group ordering.
    """

    def __init__(self, key_of: KeyFunc, policy: SuccessPolicy = status_is_200):
        self.key_of = key_of
        self.policy = policy
        self.groups: Dict[str, GroupAccumulator] = {}

    def add(self, record: ApiCallRecord, success: Optional[bool] = None) -> GroupAccumulator:
        if success is None:
            success = self.policy(record.status)
        key = self.key_of(record)
        acc = self.groups.get(key)
        if acc is None:
            acc = GroupAccumulator(key=key, name=_display_name(self.key_of, record, key))
            if self.key_of is api_key:
                acc.method = record.method
                acc.url = record.url
            self.groups[key] = acc
        acc.add(record, success)
        return acc


def group_records(records: Iterable[ApiCallRecord],
                  key_of: KeyFunc,
                  policy: SuccessPolicy = status_is_200) -> Dict[str, GroupAccumulator]:
    grouper = Grouper(key_of, policy)
    for record in records:
        grouper.add(record)
    return grouper.groups
