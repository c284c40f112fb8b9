"""Unit tests for the scam heuristic."""
from app.services.scam_detection_service import (
    ScamCategory,
    detect_scam_patterns,
)


class TestDetectScamPatterns:

    def test_payment_with_urgency(self):
        warning = detect_scam_patterns("Please send payment via PayPal now, urgent!!")
        assert warning.is_scammy
        assert ScamCategory.FINANCIAL_REQUEST in warning.categories
        assert ScamCategory.URGENCY_TACTIC in warning.categories
        assert warning.severity in ("medium", "high")

    def test_clean_message(self):
        warning = detect_scam_patterns("Shall we meet at the library on Saturday?")
        assert not warning.is_scammy
        assert warning.severity is None
        assert warning.reasons == []

    def test_empty_and_none(self):
        assert not detect_scam_patterns("").is_scammy
        assert not detect_scam_patterns(None).is_scammy

    def test_category_reported_once(self):
        warning = detect_scam_patterns("PayPal or wire transfer to my bank account")
        assert warning.categories == (ScamCategory.FINANCIAL_REQUEST,)
        assert warning.severity == "low"

    def test_three_categories_is_high(self):
        warning = detect_scam_patterns(
            "You won a prize! Act now and message me on WhatsApp"
        )
        assert len(warning.categories) == 3
        assert warning.severity == "high"

    def test_to_dict(self):
        data = detect_scam_patterns("click here link: bit.ly/abc").to_dict()
        assert data["isScammy"] is True
        assert data["categories"] == ["suspicious_link"]
        assert data["reasons"] == ["Contains suspicious links"]
