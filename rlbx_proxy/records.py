"""
Canonical records and the alias tables that map upstream JSON into them.
Upstream payloads disagree on field names (universeId vs id, creatorName vs creator.name, ...);
each canonical field lists its aliases in priority order and the first one present wins.
"""
from dataclasses import asdict, dataclass
from typing import Any


class MalformedResponse(ValueError):
    """Upstream answered with JSON of an unexpected shape."""


UNKNOWN_CREATOR = "Unknown"


@dataclass
class GameRecord:
    id: int | str
    name: str | None = None
    creator: str = UNKNOWN_CREATOR
    thumbnail: str | None = None
    playing: int | None = None
    visits: int | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class UserRecord:
    id: int | str
    name: str | None = None
    display_name: str | None = None
    description: str | None = None
    thumbnail: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


GAME_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("universeId", "id", "UniverseId"),
    "name": ("name", "Name", "title"),
    "creator": ("creatorName", "creator.name", "builder", "Creator"),
    "thumbnail": ("thumbnailUrl", "imageUrl", "thumbnail.imageUrl", "icon"),
    "playing": ("playerCount", "playing", "PlayerCount"),
    "visits": ("visits", "totalVisits", "placeVisits", "VisitedCount"),
}

# Covers both the users API ({id, name, displayName}) and OIDC userinfo claims
USER_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id", "userId", "sub"),
    "name": ("preferred_username", "name", "username"),
    "display_name": ("displayName", "nickname"),
    "description": ("description", "blurb"),
    "thumbnail": ("imageUrl", "picture", "thumbnailUrl"),
}

_MISSING = object()

# Expected value type per canonical field; fields not listed take any non-blank value
FIELD_KINDS: dict[str, str] = {
    "id": "id",
    "name": "text",
    "creator": "text",
    "display_name": "text",
    "description": "text",
    "thumbnail": "text",
    "playing": "count",
    "visits": "count",
}


def coerce(value: Any, kind: str | None = None) -> Any:
    """
    Normalize one upstream value for a field kind, or return _MISSING when it is unusable.
    None and blank strings are absent for every kind.
    id: int or non-blank str. text: str, numbers become str. count: int or a digit string.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return _MISSING
    if kind is None:
        return value
    if isinstance(value, bool):
        return _MISSING
    if kind == "id":
        return value if isinstance(value, (int, str)) else _MISSING
    if kind == "text":
        if isinstance(value, str):
            return value
        return str(value) if isinstance(value, (int, float)) else _MISSING
    if kind == "count":
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        return _MISSING
    raise ValueError(f"unknown field kind '{kind}'")


def lookup_alias(item: dict, alias: str) -> Any:
    """Read a possibly dotted path ('creator.name'). Returns _MISSING when any step is absent."""
    value: Any = item
    for part in alias.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def first_alias(item: dict, aliases: tuple[str, ...], kind: str | None = None) -> Any:
    """Value of the first alias present and usable for kind (see coerce), else None."""
    for alias in aliases:
        value = lookup_alias(item, alias)
        if value is _MISSING:
            continue
        value = coerce(value, kind)
        if value is not _MISSING:
            return value
    return None


def map_record(item: Any, aliases: dict[str, tuple[str, ...]], record_cls):
    """
    Map one upstream object into record_cls using the alias table.
    Returns None when the item is not an object or no identifier alias is usable.
    Fields with a class default (creator -> "Unknown") keep it when no alias matches.
    """
    if not isinstance(item, dict):
        return None
    values = {}
    for field_name, field_aliases in aliases.items():
        value = first_alias(item, field_aliases, FIELD_KINDS.get(field_name))
        if value is not None:
            values[field_name] = value
    if "id" not in values:
        return None
    return record_cls(**values)


def map_records(items: Any, aliases: dict[str, tuple[str, ...]], record_cls) -> list:
    """Map a list of upstream objects, dropping those without an identifier."""
    if not isinstance(items, list):
        raise MalformedResponse(f"expected a list, got {type(items).__name__}")
    records = []
    for item in items:
        record = map_record(item, aliases, record_cls)
        if record is not None:
            records.append(record)
    return records


def map_games(items: Any) -> list[GameRecord]:
    return map_records(items, GAME_ALIASES, GameRecord)


def map_game(item: Any) -> GameRecord | None:
    return map_record(item, GAME_ALIASES, GameRecord)


def map_user(item: Any) -> UserRecord | None:
    return map_record(item, USER_ALIASES, UserRecord)
