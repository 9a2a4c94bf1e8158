from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Sequence

from .utils import add_query_param, strip_query_param

SEED_COLUMNS: tuple[str, ...] = ("car_name", "price", "maker", "image", "detail_url")


@dataclass(frozen=True)
class SeedRecord:
    """
    Attributes of one listing known before navigation, as scraped from the
    search result page.
    """
    car_name: str
    price: str
    maker: str
    image: str
    detail_url: str
    extra: Dict[str, str] = field(default_factory=dict, compare=False)

    def normalized(self) -> "SeedRecord":
        """Copy with any stale `lang` query parameter removed from the detail URL."""
        url = strip_query_param(self.detail_url, "lang")
        if url == self.detail_url:
            return self
        return replace(self, detail_url=url)

    def navigation_url(self, lang: str = "") -> str:
        url = self.normalized().detail_url
        return add_query_param(url, "lang", lang) if lang else url

    def as_dict(self) -> Dict[str, str]:
        return {name: getattr(self, name) for name in SEED_COLUMNS}

    @property
    def label(self) -> str:
        return self.car_name or self.detail_url


def merge_row(
    seed: SeedRecord,
    extracted: Mapping[str, str] | None,
    headers: Sequence[str],
) -> Dict[str, str]:
    """
    Build the output row: every header column present, seed columns untouched,
    anything not resolved serialized as ''.
    """
    values: Dict[str, str] = dict(extracted or {})
    values.update(seed.as_dict())
    return {h: (values.get(h) or "") for h in headers}


def row_values(row: Mapping[str, str], headers: Sequence[str]) -> List[str]:
    return [row.get(h) or "" for h in headers]
