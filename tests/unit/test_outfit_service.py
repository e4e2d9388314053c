"""Unit tests for outfits and their item links."""

from __future__ import annotations

import pytest

from aiwear.errors import AppError, ErrorCode
from aiwear.outfit_service import create_outfit, delete_outfit, get_outfits


@pytest.fixture
def wardrobe(fake_db):
    fake_db.tables["wardrobe_items"] = [
        {"id": "w1", "user_id": "user-1", "name": "Tee", "category": "tops", "image_url": "user-1/a.jpg"},
        {"id": "w2", "user_id": "user-1", "name": "Boots", "category": "boots", "image_url": "user-1/b.jpg"},
    ]
    return fake_db


def test_create_outfit_links_items(wardrobe) -> None:
    outfit = create_outfit("user-1", "Friday", "night_out", ["w1", "w2"], client=wardrobe)

    assert outfit.occasion == "night_out"
    assert [link["wardrobe_item_id"] for link in wardrobe.rows("outfit_items")] == ["w1", "w2"]


def test_create_outfit_rejects_unknown_occasion(wardrobe) -> None:
    with pytest.raises(AppError) as excinfo:
        create_outfit("user-1", "Gala", "opera", ["w1"], client=wardrobe)

    assert excinfo.value.code is ErrorCode.INVALID_INPUT
    assert wardrobe.rows("outfits") == []


def test_outfit_survives_link_failure(wardrobe) -> None:
    wardrobe.fail_on.add(("outfit_items", "insert"))

    outfit = create_outfit("user-1", "Gym", "training", ["w1"], client=wardrobe)

    assert outfit.id
    assert len(wardrobe.rows("outfits")) == 1


def test_get_outfits_resolves_items_newest_first(wardrobe) -> None:
    older = create_outfit("user-1", "Beach day", "beach", ["w1"], client=wardrobe)
    newer = create_outfit("user-1", "Hike", "outdoor", ["w1", "w2"], client=wardrobe)
    create_outfit("user-2", "Not mine", "casual", [], client=wardrobe)

    outfits = get_outfits("user-1", client=wardrobe)

    assert [outfit.id for outfit in outfits] == [newer.id, older.id]
    assert sorted(item.id for item in outfits[0].items) == ["w1", "w2"]
    assert outfits[0].items[0].category_group in {"clothing", "footwear"}
    assert [item.name for item in outfits[1].items] == ["Tee"]


def test_delete_outfit(wardrobe) -> None:
    outfit = create_outfit("user-1", "Work", "work", [], client=wardrobe)

    delete_outfit(outfit.id, client=wardrobe)

    assert wardrobe.rows("outfits") == []
