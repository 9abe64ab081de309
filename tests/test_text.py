"""Screen text helpers: truncation, input extraction, response prefixes and
notification message bodies."""

import pytest

from stockalert_ussd.text import (
    extract_user_input,
    format_alert_email,
    format_multi_drug_alert_sms,
    format_response,
    format_stock_alert_sms,
    truncate_response,
)


class TestTruncateResponse:

    def test_short_text_unchanged(self):
        assert truncate_response("Welcome to StockAlert") == "Welcome to StockAlert"

    def test_exact_limit_unchanged(self):
        text = "a" * 182
        assert truncate_response(text) == text

    def test_long_text_cut_at_word_boundary(self):
        text = " ".join(["Paracetamol"] * 30)
        result = truncate_response(text, 60)
        assert len(result) <= 60
        assert result.endswith("...")
        # Only whole words survive
        assert all(word == "Paracetamol" for word in result[:-3].split())

    def test_cut_on_newline_boundary(self):
        text = "Select drug:\n" + "\n".join(f"{i}. Ibuprofen" for i in range(1, 30))
        result = truncate_response(text, 50)
        assert len(result) <= 50
        assert result.endswith("...")
        assert "Ibuprofe..." not in result

    def test_single_long_word_becomes_ellipsis(self):
        assert truncate_response("x" * 300, 20) == "..."

    @pytest.mark.parametrize("limit", [10, 40, 100, 182])
    def test_never_exceeds_limit(self, limit):
        text = "Alert submitted successfully! " * 20
        assert len(truncate_response(text, limit)) <= limit

    def test_idempotent(self):
        text = "word " * 100
        once = truncate_response(text, 80)
        assert truncate_response(once, 80) == once


class TestExtractUserInput:

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("", ""),
            (None, ""),
            ("   ", ""),
            ("1", "1"),
            ("1*2*3", "3"),
            ("1*1* 10 ", "10"),
            ("1*Jane Doe", "Jane Doe"),
            ("1*", ""),
        ],
    )
    def test_latest_segment(self, raw, expected):
        assert extract_user_input(raw) == expected

    def test_capped_length(self):
        assert extract_user_input("1*" + "y" * 80) == "y" * 50

    def test_custom_cap(self):
        assert extract_user_input("abcdef", max_length=3) == "abc"


class TestFormatResponse:

    def test_continue_prefix(self):
        assert format_response("Pick one", end_session=False) == "CON Pick one"

    def test_end_prefix(self):
        assert format_response("Bye", end_session=True) == "END Bye"


class TestNotificationBodies:

    def test_single_drug_sms(self):
        message = format_stock_alert_sms(
            "Kisumu County Hospital", "Paracetamol", 10, "high",
            address="Kisumu", unit="tablets",
        )
        assert message == (
            "ALERT: Kisumu County Hospital reports low stock of Paracetamol. "
            "Needed: 10 tablets. Urgency: HIGH. Location: Kisumu. Please respond ASAP."
        )

    def test_single_drug_sms_without_address(self):
        message = format_stock_alert_sms("Clinic", "Insulin", 2, "critical")
        assert "Location" not in message
        assert "Needed: 2 units" in message

    def test_multi_drug_sms(self):
        message = format_multi_drug_alert_sms("Clinic", 3, "medium")
        assert message.startswith("ALERT: Clinic needs 3 drugs.")
        assert "Overall urgency: MEDIUM." in message

    def test_email_subject_and_lines(self):
        subject, body = format_alert_email(
            "Clinic",
            [
                {"drug_name": "Insulin", "requested_quantity": 4,
                 "unit": "vials", "urgency_level": "critical"},
                {"drug_name": "Metformin", "requested_quantity": 30,
                 "urgency_level": "low"},
            ],
            "critical",
            address="Eldoret",
        )
        assert subject == "[CRITICAL] Stock alert from Clinic"
        assert "- Insulin: 4 vials (CRITICAL)" in body
        assert "- Metformin: 30 units (LOW)" in body
        assert "Location: Eldoret" in body
