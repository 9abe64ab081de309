"""Phone normalisation, validation and carrier detection."""

import pytest

from stockalert_ussd.phone import (
    detect_provider,
    is_valid_phone_number,
    mask_phone_number,
    max_menu_items,
    normalize_phone_number,
)


class TestNormalizePhoneNumber:

    @pytest.mark.parametrize(
        "raw",
        ["+254712345678", "254712345678", "0712345678", "712345678", "0712 345-678"],
    )
    def test_all_shapes_normalise_to_e164(self, raw):
        assert normalize_phone_number(raw) == "+254712345678"

    @pytest.mark.parametrize(
        "raw", ["+254712345678", "0110123456", "712345678", "12345"],
    )
    def test_idempotent(self, raw):
        once = normalize_phone_number(raw)
        assert normalize_phone_number(once) == once

    def test_landline_prefix_kept_for_validation(self):
        assert normalize_phone_number("0110123456") == "+254110123456"


class TestIsValidPhoneNumber:

    @pytest.mark.parametrize("phone", ["+254712345678", "+254110123456"])
    def test_accepts_kenyan_mobile(self, phone):
        assert is_valid_phone_number(phone)

    @pytest.mark.parametrize(
        "phone", ["+25471234567", "+254612345678", "0712345678", "", "+1712345678"],
    )
    def test_rejects_others(self, phone):
        assert not is_valid_phone_number(phone)


class TestProvider:

    @pytest.mark.parametrize(
        "code, provider",
        [
            ("63902", "safaricom"),
            ("63903", "safaricom"),
            ("63907", "airtel"),
            ("63905", "orange"),
            ("99999", "safaricom"),
            (None, "safaricom"),
            ("", "safaricom"),
        ],
    )
    def test_detect(self, code, provider):
        assert detect_provider(code) == provider

    def test_menu_item_limits(self):
        assert max_menu_items("safaricom") == 8
        assert max_menu_items("airtel") == 6
        assert max_menu_items("unknown") == 8


def test_mask_hides_subscriber_digits():
    masked = mask_phone_number("+254712345678")
    assert masked == "+2547123***"
    assert "45678" not in masked
