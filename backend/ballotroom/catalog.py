"""Reference catalog: the contest year's categories and nominees.

The catalog is read-only data bundled with the package. Category ids are the
category names; nominee ids are derived with :func:`nominee_id` so every
client computes the same id for the same nominee.
"""
import json
import os
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Optional

DEFAULT_CATALOG_PATH = os.path.join(os.path.dirname(__file__), 'data', 'nominations-2026.json')

# Fields that may carry the "who" behind a nominee, in display priority
_SECONDARY_FIELDS = ('director', 'cinematographer', 'composer', 'writers', 'producers', 'creators', 'country', 'credits')


def _primary(nominee: Dict[str, str]) -> str:
    return nominee.get('name') or nominee.get('film') or nominee.get('song') or ''


def nominee_id(category_name: str, nominee: Dict[str, str]) -> str:
    """Stable id for a nominee: ``"<category>::<primary>"`` lower-cased, whitespace to hyphens."""
    return re.sub(r'\s+', '-', f"{category_name}::{_primary(nominee)}".lower())


def display_name(nominee: Dict[str, str]) -> str:
    # Acting categories show the person, most others the film, songs the title
    return _primary(nominee) or 'Unknown'


def secondary_info(nominee: Dict[str, str]) -> Optional[str]:
    if nominee.get('name') and nominee.get('film'):
        return nominee['film']
    for field in _SECONDARY_FIELDS:
        if nominee.get(field):
            return nominee[field]
    return None


@dataclass(frozen=True)
class Category:
    name: str
    nominees: tuple

    @property
    def id(self) -> str:
        return self.name

    def nominee_ids(self) -> List[str]:
        return [nominee_id(self.name, n) for n in self.nominees]

    def find_nominee(self, nid: str) -> Optional[Dict[str, str]]:
        for n in self.nominees:
            if nominee_id(self.name, n) == nid:
                return n
        return None


class Catalog:
    def __init__(self, year: int, ceremony: str, categories: List[Category], ceremony_date: Optional[str] = None):
        self.year = year
        self.ceremony = ceremony
        self.ceremony_date = ceremony_date
        self.categories = list(categories)
        self._by_id = {c.id: c for c in self.categories}

    @classmethod
    def from_dict(cls, data: dict) -> 'Catalog':
        categories = [
            Category(name=c['name'], nominees=tuple(dict(n) for n in c.get('nominees', [])))
            for c in data.get('categories', [])
        ]
        return cls(
            year=int(data.get('year', 0)),
            ceremony=data.get('ceremony', ''),
            categories=categories,
            ceremony_date=data.get('ceremonyDate'),
        )

    @property
    def category_count(self) -> int:
        return len(self.categories)

    def category_ids(self) -> List[str]:
        return [c.id for c in self.categories]

    def get_category(self, category_id: str) -> Optional[Category]:
        return self._by_id.get(category_id)

    def has_category(self, category_id: Optional[str]) -> bool:
        return category_id in self._by_id

    def has_nominee(self, category_id: str, nid: str) -> bool:
        category = self.get_category(category_id)
        return category is not None and category.find_nominee(nid) is not None

    def index_of(self, category_id: Optional[str]) -> int:
        """Position of the category in ceremony order, -1 when unknown or unset."""
        for idx, c in enumerate(self.categories):
            if c.id == category_id:
                return idx
        return -1

    def next_category_id(self, category_id: Optional[str]) -> Optional[str]:
        idx = self.index_of(category_id)
        if idx + 1 < len(self.categories):
            return self.categories[idx + 1].id
        return None

    def previous_category_id(self, category_id: Optional[str]) -> Optional[str]:
        idx = self.index_of(category_id)
        if idx > 0:
            return self.categories[idx - 1].id
        return None


def load_catalog(path: Optional[str] = None) -> Catalog:
    with open(path or DEFAULT_CATALOG_PATH, encoding='utf-8') as fh:
        return Catalog.from_dict(json.load(fh))


@lru_cache(maxsize=4)
def get_catalog(path: Optional[str] = None) -> Catalog:
    """Cached catalog for ``path`` (the bundled nominations when empty)."""
    return load_catalog(path or None)
