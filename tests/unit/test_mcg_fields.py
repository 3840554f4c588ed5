"""
Unit tests for MCG payload field extraction.
"""

import pytest
from backoffice.utils.mcg_fields import (
    extract_mcg_field, extract_quantity, extract_attribute_tags, has_archived_attribute
)


class TestExtractField:
    """Tests for tolerant multi-key extraction."""

    @pytest.mark.parametrize('item', [
        {'ItemID': 'A1'}, {'ItemId': 'A1'}, {'itemID': 'A1'}, {'id': 'A1'}, {'itemId': 'A1'}, {'item_id': 'A1'},
    ])
    def test_id_candidates(self, item):
        assert extract_mcg_field(item, 'mcg_id') == 'A1'

    @pytest.mark.parametrize('item', [
        {'Barcode': '729'}, {'BarCode': '729'}, {'ItemCode': '729'}, {'barcode': '729'},
        {'item_code': '729'}, {'code': '729'},
    ])
    def test_barcode_candidates(self, item):
        assert extract_mcg_field(item, 'barcode') == '729'

    def test_first_non_empty_candidate_wins(self):
        assert extract_mcg_field({'ItemID': '  ', 'id': 42}, 'mcg_id') == '42'

    def test_missing_field(self):
        assert extract_mcg_field({'Name': 'x'}, 'barcode') == ''
        assert extract_mcg_field(None, 'barcode') == ''


class TestExtractQuantity:
    """Tests for remote quantity parsing."""

    @pytest.mark.parametrize('item, expected', [
        ({'StockQuantity': 7}, 7),
        ({'stock': '12'}, 12),
        ({'item_inventory': 3.9}, 3),
        ({'StockQuantity': -4}, 0),
        ({'StockQuantity': 'n/a'}, 0),
        ({}, 0),
        ({'StockQuantity': 0, 'stock': 9}, 0),
    ])
    def test_quantity(self, item, expected):
        assert extract_quantity(item) == expected


class TestAttributes:
    """Tests for the archive attribute convention."""

    def test_tags_from_delimited_string(self):
        assert extract_attribute_tags({'item_attribute': 'Archived; Sale|New'}) == ['archived', 'sale', 'new']

    def test_tags_from_nested_values(self):
        tags = extract_attribute_tags({'ItemAttributes': [{'flag': 'archive'}, ['x', 'y']]})
        assert tags == ['archive', 'x', 'y']

    def test_archived(self):
        assert has_archived_attribute({'item_attribute': '1'}) is True
        assert has_archived_attribute({'attributes': 'archived_product'}) is True

    def test_restore_tag_wins(self):
        assert has_archived_attribute({'item_attribute': 'archived,restored'}) is False

    def test_no_attributes(self):
        assert has_archived_attribute({'ItemID': 'A'}) is False
