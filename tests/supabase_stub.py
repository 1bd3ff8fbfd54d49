from copy import deepcopy
from typing import Any, Callable, Dict, List

# Shared in-memory tables; every SupabaseStub instance sees the same rows
_TABLES: Dict[str, List[dict]] = {}


def reset_tables(**tables: List[dict]) -> None:
    _TABLES.clear()
    for name, rows in tables.items():
        _TABLES[name] = [deepcopy(r) for r in rows]


def table_rows(name: str) -> List[dict]:
    return _TABLES.setdefault(name, [])


class _DummyResponse:
    def __init__(self, data: List[Any]):
        self.data = data


def _like(pattern: str, value: Any, *, fold: bool = False) -> bool:
    text, needle = str(value), pattern.strip("%")
    if fold:
        text, needle = text.lower(), needle.lower()
    return needle in text


class _Query:  # noqa: D101
    def __init__(self, name: str):
        self._name = name
        self._filters: List[Callable[[dict], bool]] = []
        self._order: tuple | None = None
        self._limit: int | None = None
        self._update: dict | None = None
        self._insert: Any = None

    def _where(self, predicate: Callable[[dict], bool]) -> "_Query":
        self._filters.append(predicate)
        return self

    def select(self, *_a, **_k):
        return self

    def eq(self, column, value):
        return self._where(lambda r: r.get(column) == value)

    def neq(self, column, value):
        return self._where(lambda r: r.get(column) != value)

    def in_(self, column, values):
        values = list(values)
        return self._where(lambda r: r.get(column) in values)

    def is_(self, column, value):
        if value in (None, "null"):
            return self._where(lambda r: r.get(column) is None)
        return self._where(lambda r: r.get(column) is value)

    def gt(self, column, value):
        return self._where(lambda r: r.get(column) is not None and r.get(column) > value)

    def lt(self, column, value):
        return self._where(lambda r: r.get(column) is not None and r.get(column) < value)

    def gte(self, column, value):
        return self._where(lambda r: r.get(column) is not None and r.get(column) >= value)

    def lte(self, column, value):
        return self._where(lambda r: r.get(column) is not None and r.get(column) <= value)

    def like(self, column, pattern):
        return self._where(lambda r: _like(pattern, r.get(column)))

    def ilike(self, column, pattern):
        return self._where(lambda r: _like(pattern, r.get(column), fold=True))

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def update(self, values):
        self._update = dict(values)
        return self

    def insert(self, data):
        self._insert = data
        return self

    async def execute(self, *_, **__):
        rows = table_rows(self._name)
        if self._insert is not None:
            new = self._insert if isinstance(self._insert, list) else [self._insert]
            rows.extend(deepcopy(r) for r in new)
            return _DummyResponse(deepcopy(new))

        matched = [r for r in rows if all(f(r) for f in self._filters)]
        if self._update is not None:
            for row in matched:
                row.update(deepcopy(self._update))
            return _DummyResponse(deepcopy(matched))

        if self._order:
            column, desc = self._order
            matched = sorted(matched, key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        if self._limit:
            matched = matched[: self._limit]
        return _DummyResponse(deepcopy(matched))


class SupabaseStub:  # noqa: D101
    def table(self, name, *_a, **_k):
        return _Query(name)

    async def aclose(self):
        return None
