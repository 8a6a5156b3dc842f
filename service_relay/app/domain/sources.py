"""
Registry of configuration sources served by transform mode.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Union
from urllib.parse import urlsplit


@dataclass(frozen=True)
class SourceLocation:
    """Where a source document lives: a remote URL or a local file."""

    url: Optional[str] = None
    path: Optional[Path] = None

    @property
    def is_remote(self) -> bool:
        return self.url is not None

    def __str__(self) -> str:
        return self.url if self.url is not None else str(self.path)


class SourceRegistry:
    """Immutable mapping of source keys to locations, with a default key."""

    def __init__(self, locations: Mapping[str, SourceLocation], default_key: str = "full"):
        if default_key not in locations:
            raise ValueError(f"Default source '{default_key}' is not registered")
        self._locations = MappingProxyType(dict(locations))
        self.default_key = default_key

    @classmethod
    def remote(cls, urls: Mapping[str, str], default_key: str = "full") -> "SourceRegistry":
        return cls({key: SourceLocation(url=url) for key, url in urls.items()}, default_key)

    @classmethod
    def local(
        cls,
        source_dir: Union[str, Path],
        urls: Mapping[str, str],
        default_key: str = "full",
    ) -> "SourceRegistry":
        """Map each key to ``<source_dir>/<file name of its remote URL>``."""
        base = Path(source_dir)
        return cls(
            {key: SourceLocation(path=base / _file_name(url)) for key, url in urls.items()},
            default_key,
        )

    def __contains__(self, key: object) -> bool:
        return key in self._locations

    @property
    def keys(self) -> Iterable[str]:
        return tuple(self._locations)

    def resolve(self, key: str) -> SourceLocation:
        """Return the location for ``key``; unknown keys resolve to the default source."""
        return self._locations.get(key, self._locations[self.default_key])

    def as_dict(self) -> Dict[str, str]:
        return {key: str(location) for key, location in self._locations.items()}


def _file_name(url: str) -> str:
    path = urlsplit(url).path if "://" in url else url
    return path.rstrip("/").rsplit("/", 1)[-1]
