"""
Feature Schema

The ordered list of typed columns exposed by this source. Built once at
startup from the configured feature names and types, then shared read-only
by the filter compiler, the store and the HTTP layer.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Union


class FeatureType(str, Enum):
    """Types a feature can take"""
    NOMINAL = "nominal"
    NUMERIC = "numeric"
    DATE = "date"
    LOGIC = "logic"
    TEXT = "text"

    @classmethod
    def parse(cls, value: Optional[str]) -> "FeatureType":
        """Case-insensitive lookup, anything unknown is text."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.TEXT


@dataclass(frozen=True)
class Feature:
    """A named, typed column of the source table."""
    index: int
    name: str
    type: FeatureType

    def to_dict(self) -> dict:
        return {"index": self.index, "name": self.name, "type": self.type.value}


def quote_identifier(name: str) -> str:
    """Quote a PostgreSQL identifier (table or column name)."""
    return '"' + name.replace('"', '""') + '"'


class FeatureSchema:
    """Ordered, immutable collection of features."""

    def __init__(self, features: Iterable[Feature]):
        self._features = tuple(features)
        self._by_name = {}
        for position, feature in enumerate(self._features):
            if feature.index != position:
                raise ValueError(f"Feature '{feature.name}' has index {feature.index}, expected {position}")
            if feature.name in self._by_name:
                raise ValueError(f"Duplicated feature name '{feature.name}'")
            self._by_name[feature.name] = feature

    @classmethod
    def from_lists(cls, names: list[str], types: list[Union[str, FeatureType]]) -> "FeatureSchema":
        """
        Build the schema from parallel name / type lists.
        Missing types default to text.
        """
        features = []
        for i, name in enumerate(names):
            raw_type = types[i] if i < len(types) else None
            feature_type = raw_type if isinstance(raw_type, FeatureType) else FeatureType.parse(raw_type)
            features.append(Feature(index=i, name=name, type=feature_type))
        return cls(features)

    def __len__(self) -> int:
        return len(self._features)

    def __iter__(self):
        return iter(self._features)

    @property
    def features(self) -> tuple[Feature, ...]:
        return self._features

    @property
    def names(self) -> list[str]:
        return [f.name for f in self._features]

    def get(self, index) -> Optional[Feature]:
        """Feature at index, or None when the index does not resolve."""
        if isinstance(index, bool) or not isinstance(index, int):
            return None
        if 0 <= index < len(self._features):
            return self._features[index]
        return None

    def by_name(self, name: str) -> Optional[Feature]:
        return self._by_name.get(name)

    def resolve_projection(self, projection: Union[str, Iterable, None]) -> list[int]:
        """
        Turn a comma-separated list of feature indexes into valid indexes.
        Non-numeric, negative and out of range entries are dropped.
        """
        if not projection:
            return []
        if isinstance(projection, str):
            projection = projection.split(",")

        indexes = []
        for part in projection:
            try:
                index = int(str(part).strip())
            except ValueError:
                continue
            if self.get(index) is not None:
                indexes.append(index)
        return indexes

    def describe(self) -> list[dict]:
        return [f.to_dict() for f in self._features]
