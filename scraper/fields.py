"""
Declarative field table for mobile.de vehicle detail pages.

Every output column is resolved by an ordered chain of strategies. The first
strategy producing a non-empty value wins; label lookups (dt/dd scans) always
come last because they are the least specific and walk every label on the page.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Tuple, Union

from .models import SEED_COLUMNS


class StrategyKind(str, Enum):
    TEXT = "text"
    SIBLING_TEXT = "siblingText"
    LIST_JOIN = "listJoin"
    ATTR_JOIN = "attrJoin"
    COMPOSITE = "composite"
    PARENT_TEXT = "parentText"
    LABEL_LOOKUP = "labelLookup"


@dataclass(frozen=True)
class Text:
    selector: str
    kind = StrategyKind.TEXT


@dataclass(frozen=True)
class SiblingText:
    selector: str
    kind = StrategyKind.SIBLING_TEXT


@dataclass(frozen=True)
class ListJoin:
    selector: str
    delimiter: str = "; "
    kind = StrategyKind.LIST_JOIN


@dataclass(frozen=True)
class AttrJoin:
    selector: str
    attrs: Tuple[str, ...] = ("srcset", "src")
    delimiter: str = "; "
    kind = StrategyKind.ATTR_JOIN


@dataclass(frozen=True)
class Composite:
    first: str
    second: str
    kind = StrategyKind.COMPOSITE


@dataclass(frozen=True)
class ParentText:
    """Text of `child_selector` searched inside the parent of the element matching `selector`."""
    selector: str
    child_selector: str
    kind = StrategyKind.PARENT_TEXT


@dataclass(frozen=True)
class LabelLookup:
    labels: Tuple[str, ...]
    label_tag: str = "dt"
    value_tag: str = "dd"
    kind = StrategyKind.LABEL_LOOKUP


Strategy = Union[Text, SiblingText, ListJoin, AttrJoin, Composite, ParentText, LabelLookup]


@dataclass(frozen=True)
class FieldSpec:
    name: str
    strategies: Tuple[Strategy, ...]

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("FieldSpec needs a name")
        if not self.strategies:
            raise ValueError(f"FieldSpec {self.name!r} has no strategies")
        seen_label = False
        for s in self.strategies:
            if s.kind is StrategyKind.LABEL_LOOKUP:
                seen_label = True
            elif seen_label:
                raise ValueError(
                    f"FieldSpec {self.name!r}: label lookups must come after every selector strategy"
                )


def build_table(specs: Iterable[FieldSpec]) -> Tuple[FieldSpec, ...]:
    table = tuple(specs)
    names = [s.name for s in table]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ValueError(f"duplicate field names: {', '.join(dupes)}")
    clash = sorted(set(names) & set(SEED_COLUMNS))
    if clash:
        raise ValueError(f"field names collide with seed columns: {', '.join(clash)}")
    return table


def _testid(name: str) -> str:
    return f'[data-testid="{name}"]'


def _item(name: str) -> SiblingText:
    # key-feature / technical-data rows: <div data-testid="mileage-item">Mileage</div><div>12,000 km</div>
    return SiblingText(_testid(f"{name}-item"))


def _labels(*labels: str) -> LabelLookup:
    return LabelLookup(tuple(labels))


FIELD_SPECS: Tuple[FieldSpec, ...] = build_table([
    # Key features & technical data
    FieldSpec("first_registration", (_item("firstRegistration"), _labels("First registration", "Erstzulassung"))),
    FieldSpec("mileage", (_item("mileage"), _labels("Mileage", "Kilometerstand"))),
    FieldSpec("power", (_item("power"), _labels("Power", "Leistung"))),
    FieldSpec("cubic_capacity", (_labels("Cubic capacity", "Hubraum"),)),
    FieldSpec("fuel", (_item("envkv.engineType"), _labels("Fuel", "Kraftstoff"))),
    FieldSpec("transmission", (_item("transmission"), _labels("Transmission", "Getriebe"))),
    FieldSpec("drive_type", (_labels("Drive type", "Antriebsart"),)),
    FieldSpec("colour", (_item("color"), _labels("Colour", "Farbe"))),
    FieldSpec("number_of_seats", (_item("numSeats"), _labels("Number of seats", "Sitze"))),
    FieldSpec("door_count", (_item("doorCount"), _labels("Door count", "Türen"))),
    FieldSpec("weight", (_labels("Weight", "Gewicht"),)),
    FieldSpec("cylinders", (_labels("Cylinders", "Zylinder"),)),
    FieldSpec("tank_capacity", (_labels("Tank capacity", "Tankvolumen"),)),
    FieldSpec("condition", (_item("damageCondition"),)),
    FieldSpec("category", (_item("category"),)),
    FieldSpec("availability", (_item("availability"),)),
    FieldSpec("origin", (_item("countryVersion"),)),

    # Battery (EV / PHEV)
    FieldSpec("battery_capacity", (_item("batteryCapacity"),)),
    FieldSpec("battery_status", (Text(f'{_testid("vip-key-features-list-item-batteryStatus")} .geJSa'),)),
    FieldSpec("plug_types", (ListJoin(f'{_testid("vip-battery-information-box")} .z_K9l', delimiter=", "),)),

    # Environment & inspection
    FieldSpec("co2_emissions", (_item("envkv.co2Emissions"),)),
    FieldSpec("environmental_badge", (_item("emissionsSticker"),)),
    FieldSpec("hu", (_item("hu"),)),

    # Equipment
    FieldSpec("air_conditioning", (_item("climatisation"),)),
    FieldSpec("parking_assist", (_item("parkAssists"),)),
    FieldSpec("airbags", (_item("airbag"),)),
    FieldSpec("manufacturer_color", (_item("manufacturerColorName"),)),
    FieldSpec("interior", (_item("interior"),)),
    FieldSpec("features", (ListJoin(f'{_testid("vip-features-list")} li', delimiter="; "),)),

    # Description
    FieldSpec("description", (Text(_testid("vip-vehicle-description-text")),)),

    # Dealer
    FieldSpec("dealer_name", (Text(f'{_testid("vip-dealer-box-content-section")} .GdlnG'),)),
    FieldSpec("dealer_address", (Composite(
        _testid("vip-dealer-box-seller-address1"),
        _testid("vip-dealer-box-seller-address2"),
    ),)),
    FieldSpec("dealer_rating", (Text(_testid("rating-score-localized")),)),

    # Price rating badge sits next to the clickable evaluation element
    FieldSpec("price_evaluation", (ParentText(_testid("price-evaluation-click"), "._u77E"),)),

    # Gallery
    FieldSpec("images", (AttrJoin('[data-testid^="slide-container-image"] img', attrs=("srcset", "src")),)),
])

EXTRACTED_COLUMNS: Tuple[str, ...] = tuple(spec.name for spec in FIELD_SPECS)

# Fixed CSV column order: seed attributes first, then extracted attributes.
HEADERS: Tuple[str, ...] = SEED_COLUMNS + EXTRACTED_COLUMNS
