import pytest

from merchforge.services.catalog import NO_ICON, find_icon_by_keyword


@pytest.mark.parametrize(
    "keyword, icon_id",
    [
        ("love", "heart"),
        ("  Espresso ", "coffee"),
        ("hiking", "mountain"),
        ("sunshine", "sun"),
        ("kittens", "paw"),
        ("", NO_ICON),
        ("spreadsheet", NO_ICON),
    ],
)
def test_find_icon_by_keyword(keyword, icon_id):
    assert find_icon_by_keyword(keyword).id == icon_id
