"""Tagged aggregation stage descriptors.

A pipeline is an ordered list of these frozen dataclasses. Each stage knows
two renderings of itself: ``to_mongo()`` produces the MongoDB aggregation
stages it stands for, and ``apply()`` evaluates it over plain rows for the
local JSON store. Keeping both next to each other is what lets a pipeline be
built once per request and run against either backend.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable

from mediahub.storage.query import get_path, matches

Row = dict[str, Any]
RowSource = Callable[[str], list[Row]]

ARRANGE_RANK_FIELD = "_arrange_rank"


class Stage:
    """Base class for one pipeline step."""

    def to_mongo(self) -> list[dict[str, Any]]:
        raise NotImplementedError

    def apply(self, rows: list[Row], source: RowSource) -> list[Row]:
        raise NotImplementedError


@dataclass(frozen=True)
class Match(Stage):
    """Keep rows satisfying a Mongo-style filter."""

    query: dict[str, Any]

    def to_mongo(self) -> list[dict[str, Any]]:
        return [{"$match": self.query}]

    def apply(self, rows: list[Row], source: RowSource) -> list[Row]:
        return [row for row in rows if matches(row, self.query)]


@dataclass(frozen=True)
class TextSearch(Stage):
    """Case-insensitive literal substring search OR-combined across fields."""

    term: str
    fields: tuple[str, ...]

    def to_mongo(self) -> list[dict[str, Any]]:
        pattern = re.escape(self.term)
        return [
            {
                "$match": {
                    "$or": [
                        {field: {"$regex": pattern, "$options": "i"}}
                        for field in self.fields
                    ]
                }
            }
        ]

    def apply(self, rows: list[Row], source: RowSource) -> list[Row]:
        needle = self.term.casefold()
        return [
            row
            for row in rows
            if any(
                needle in str(get_path(row, field) or "").casefold()
                for field in self.fields
            )
        ]


@dataclass(frozen=True)
class Sort(Stage):
    """Order rows by ``(field, direction)`` keys, direction ``1`` or ``-1``."""

    keys: tuple[tuple[str, int], ...]

    def to_mongo(self) -> list[dict[str, Any]]:
        return [{"$sort": {field: direction for field, direction in self.keys}}]

    def apply(self, rows: list[Row], source: RowSource) -> list[Row]:
        ordered = list(rows)
        # Stable sorts applied from the least significant key up.
        for field, direction in reversed(self.keys):
            ordered.sort(
                key=lambda row, f=field: _sort_key(get_path(row, f)),
                reverse=direction < 0,
            )
        return ordered


def _sort_key(value: Any) -> tuple[int, Any]:
    # Missing values sort before everything else, as in MongoDB.
    if value is None:
        return (0, "")
    if isinstance(value, bool):
        return (2, int(value))
    if isinstance(value, (int, float)):
        return (1, value)
    return (3, str(value))


@dataclass(frozen=True)
class Paginate(Stage):
    """Split rows into a total count and one page, as a single facet row."""

    page: int
    limit: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def to_mongo(self) -> list[dict[str, Any]]:
        return [
            {
                "$facet": {
                    "metadata": [{"$count": "total"}],
                    "docs": [{"$skip": self.skip}, {"$limit": self.limit}],
                }
            }
        ]

    def apply(self, rows: list[Row], source: RowSource) -> list[Row]:
        metadata = [{"total": len(rows)}] if rows else []
        return [{"metadata": metadata, "docs": rows[self.skip : self.skip + self.limit]}]


@dataclass(frozen=True)
class Lookup(Stage):
    """Join rows of another collection into an array field."""

    from_collection: str
    local_field: str
    foreign_field: str
    as_field: str
    pipeline: tuple[Stage, ...] = ()

    def to_mongo(self) -> list[dict[str, Any]]:
        lookup: dict[str, Any] = {
            "from": self.from_collection,
            "localField": self.local_field,
            "foreignField": self.foreign_field,
            "as": self.as_field,
        }
        if self.pipeline:
            lookup["pipeline"] = [
                rendered for stage in self.pipeline for rendered in stage.to_mongo()
            ]
        return [{"$lookup": lookup}]

    def apply(self, rows: list[Row], source: RowSource) -> list[Row]:
        foreign_rows = source(self.from_collection)
        joined: list[Row] = []
        for row in rows:
            local = get_path(row, self.local_field)
            keys = local if isinstance(local, list) else [local]
            found = [
                foreign
                for foreign in foreign_rows
                if get_path(foreign, self.foreign_field) in keys
            ]
            for stage in self.pipeline:
                found = stage.apply(found, source)
            joined.append({**row, self.as_field: found})
        return joined


@dataclass(frozen=True)
class Size(Stage):
    """Store the length of an array field."""

    array_field: str
    as_field: str

    def to_mongo(self) -> list[dict[str, Any]]:
        return [
            {
                "$addFields": {
                    self.as_field: {"$size": {"$ifNull": [f"${self.array_field}", []]}}
                }
            }
        ]

    def apply(self, rows: list[Row], source: RowSource) -> list[Row]:
        return [
            {**row, self.as_field: len(get_path(row, self.array_field) or [])}
            for row in rows
        ]


@dataclass(frozen=True)
class Membership(Stage):
    """Flag whether ``value`` occurs in an array path; false when value is None."""

    array_field: str
    value: str | None
    as_field: str

    def to_mongo(self) -> list[dict[str, Any]]:
        if self.value is None:
            return [{"$addFields": {self.as_field: {"$literal": False}}}]
        return [
            {
                "$addFields": {
                    self.as_field: {
                        "$in": [
                            self.value,
                            {"$ifNull": [f"${self.array_field}", []]},
                        ]
                    }
                }
            }
        ]

    def apply(self, rows: list[Row], source: RowSource) -> list[Row]:
        if self.value is None:
            return [{**row, self.as_field: False} for row in rows]
        return [
            {**row, self.as_field: self.value in (get_path(row, self.array_field) or [])}
            for row in rows
        ]


@dataclass(frozen=True)
class FirstElement(Stage):
    """Replace an array field with its first element."""

    field: str

    def to_mongo(self) -> list[dict[str, Any]]:
        return [{"$addFields": {self.field: {"$first": f"${self.field}"}}}]

    def apply(self, rows: list[Row], source: RowSource) -> list[Row]:
        shaped: list[Row] = []
        for row in rows:
            items = row.get(self.field) or []
            shaped.append({**row, self.field: items[0] if items else None})
        return shaped


@dataclass(frozen=True)
class Project(Stage):
    """Keep ``_id`` and the listed top-level fields."""

    fields: tuple[str, ...]

    def to_mongo(self) -> list[dict[str, Any]]:
        return [{"$project": {field: 1 for field in self.fields}}]

    def apply(self, rows: list[Row], source: RowSource) -> list[Row]:
        keep = {"_id", *self.fields}
        return [{key: value for key, value in row.items() if key in keep} for row in rows]


@dataclass(frozen=True)
class ArrangeByReference(Stage):
    """Order rows by the position of ``field`` within a reference list."""

    field: str
    order: tuple[str, ...]

    def to_mongo(self) -> list[dict[str, Any]]:
        return [
            {
                "$addFields": {
                    ARRANGE_RANK_FIELD: {
                        "$indexOfArray": [list(self.order), f"${self.field}"]
                    }
                }
            },
            {"$sort": {ARRANGE_RANK_FIELD: 1}},
            {"$project": {ARRANGE_RANK_FIELD: 0}},
        ]

    def apply(self, rows: list[Row], source: RowSource) -> list[Row]:
        rank = {value: index for index, value in enumerate(self.order)}
        return sorted(rows, key=lambda row: rank.get(get_path(row, self.field), -1))


def render_mongo(stages: list[Stage]) -> list[dict[str, Any]]:
    """Flatten a stage list into a MongoDB aggregation pipeline."""
    return [rendered for stage in stages for rendered in stage.to_mongo()]


def evaluate(stages: list[Stage], rows: list[Row], source: RowSource) -> list[Row]:
    """Run a stage list over in-memory rows."""
    for stage in stages:
        rows = stage.apply(rows, source)
    return rows
