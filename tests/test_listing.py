from datetime import datetime

import pytest

from asset_vault.errors import ValidationError
from asset_vault.listing import list_assets
from asset_vault.timestamps import to_display


@pytest.fixture
def owner_with_three_assets(metadata_store):
    for day in (1, 2, 3):
        metadata_store.seed(
            "assets",
            {
                "_id": f"m{day}",
                "email": "a@x.com",
                "filename": f"day{day}.png",
                "url": f"https://blobs.test/c{day}",
                "public_id": f"c{day}",
                "resource_type": "image",
                "created_at": f"2024-01-0{day} 10:00:00",
            },
        )
    metadata_store.seed(
        "users",
        {
            "_id": "u1",
            "username": "alice",
            "email": "a@x.com",
            "password": "pbkdf2:sha256:secret",
            "is_email_verified": False,
            "created_at": "2023-12-31 20:00:00",
        },
    )
    return metadata_store


def test_second_page_of_one_is_the_second_newest(owner_with_three_assets):
    page = list_assets(owner_with_three_assets, "a@x.com", page=2, page_size=1)

    assert len(page.assets) == 1
    assert page.assets[0]["_id"] == "m2"
    assert page.assets[0]["created_at"] == "2024-01-02 15:30:00"


def test_listing_is_newest_first(owner_with_three_assets):
    page = list_assets(owner_with_three_assets, "a@x.com")

    assert [asset["public_id"] for asset in page.assets] == ["c3", "c2", "c1"]
    assert page.page == 1
    assert page.page_size == 50
    assert page.select_limit == 10


def test_user_profile_has_no_password(owner_with_three_assets):
    page = list_assets(owner_with_three_assets, "a@x.com", tz_name="UTC")

    assert page.user == {
        "_id": "u1",
        "username": "alice",
        "email": "a@x.com",
        "is_email_verified": False,
        "created_at": "2023-12-31 20:00:00",
    }
    assert "password" in owner_with_three_assets.collections["users"][0]


def test_page_past_the_end_is_empty(owner_with_three_assets):
    page = list_assets(owner_with_three_assets, "a@x.com", page=5, page_size=2)

    assert page.assets == []
    assert page.user["email"] == "a@x.com"


def test_unknown_owner_has_no_profile(metadata_store):
    page = list_assets(metadata_store, "nobody@x.com")

    assert page.assets == []
    assert page.user is None


@pytest.mark.parametrize(
    "owner,page,page_size",
    [("", 1, 50), (None, 1, 50), ("a@x.com", 0, 50), ("a@x.com", 1, 0), ("a@x.com", -1, 10)],
)
def test_listing_rejects_bad_input(metadata_store, owner, page, page_size):
    with pytest.raises(ValidationError):
        list_assets(metadata_store, owner, page, page_size)


def test_to_display_accepts_datetimes_and_leaves_unknown_text():
    assert to_display(datetime(2024, 1, 1, 0, 0, 0), "Asia/Kolkata") == "2024-01-01 05:30:00"
    assert to_display("2024-01-01T00:00:00Z", "UTC") == "2024-01-01 00:00:00"
    assert to_display("yesterday", "UTC") == "yesterday"
    assert to_display(None, "UTC") is None
