from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from . import config
from .errors import UnknownItem
from .models import CatalogItem, Rarity, Slot


def _item(item_id: str, name: str, slot: Slot, rarity: Rarity, price: Optional[int]) -> CatalogItem:
    return CatalogItem(
        id=item_id,
        name=name,
        slot=slot,
        rarity=rarity,
        price=price,
        icon=f"/items/{slot.value}/{item_id}.png",
    )


CATALOG: Tuple[CatalogItem, ...] = (
    _item("skin_green", "Green", Slot.skin, Rarity.common, 0),
    _item("skin_pink", "Pink", Slot.skin, Rarity.uncommon, 150),
    _item("skin_blue", "Blue", Slot.skin, Rarity.rare, 400),
    _item("skin_red", "Red", Slot.skin, Rarity.epic, 900),
    _item("skin_santa", "Santa", Slot.skin, Rarity.legendary, 1800),
    _item("skin_wizard", "Wizard", Slot.skin, Rarity.legendary, None),
    _item("hat_cap", "Cap", Slot.hat, Rarity.common, 40),
    _item("hat_beanie", "Beanie", Slot.hat, Rarity.uncommon, 120),
    _item("hat_pirate", "Pirate Hat", Slot.hat, Rarity.rare, 350),
    _item("hat_crown", "Crown", Slot.hat, Rarity.epic, 800),
    _item("scarf_red", "Red Scarf", Slot.scarf, Rarity.common, 30),
    _item("scarf_striped", "Striped Scarf", Slot.scarf, Rarity.uncommon, 110),
    _item("glasses_round", "Round Glasses", Slot.glasses, Rarity.common, 35),
    _item("glasses_patch", "Eye Patch", Slot.glasses, Rarity.rare, 300),
    _item("glasses_star", "Star Shades", Slot.glasses, Rarity.epic, 750),
    _item("hand_lily", "Lily Pad", Slot.hand_item, Rarity.common, 25),
    _item("hand_umbrella", "Umbrella", Slot.hand_item, Rarity.uncommon, 140),
    _item("hand_wand", "Magic Wand", Slot.hand_item, Rarity.legendary, 1600),
    _item("gift_box_1", "Gift Box", Slot.container, Rarity.common, None),
    _item("box_silver", "Silver Box", Slot.container, Rarity.rare, None),
    _item("box_gold", "Gold Box", Slot.container, Rarity.epic, None),
    _item("box_diamond", "Diamond Box", Slot.container, Rarity.legendary, None),
)

BY_ID: Dict[str, CatalogItem] = {item.id: item for item in CATALOG}

RARITY_ORDER: List[Rarity] = [Rarity(value) for value in config.RARITY_ORDER]


def get_item(item_id: str) -> CatalogItem:
    item = BY_ID.get(item_id)
    if item is None:
        raise UnknownItem(item_id)
    return item


def rarity_rank(rarity: Rarity) -> int:
    return RARITY_ORDER.index(rarity)


def next_rarity(rarity: Rarity) -> Optional[Rarity]:
    rank = rarity_rank(rarity)
    if rank >= len(RARITY_ORDER) - 1:
        return None
    return RARITY_ORDER[rank + 1]


def is_gift(item: CatalogItem) -> bool:
    return item.slot == Slot.container


def pool_for(
    rarity: Rarity,
    *,
    exclude_slots: Iterable[str] = config.NO_PAYOUT_SLOTS,
    catalog: Iterable[CatalogItem] = CATALOG,
) -> List[CatalogItem]:
    """Catalog items of ``rarity`` that may be paid out as a reward."""

    excluded = set(exclude_slots)
    return [item for item in catalog if item.rarity == rarity and item.slot.value not in excluded]


def sorted_by_rarity(items: Iterable[CatalogItem]) -> List[CatalogItem]:
    return sorted(items, key=lambda item: (rarity_rank(item.rarity), item.id))
