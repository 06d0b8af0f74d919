"""
Tests for participant and debt ingestion.

Tests cover:
- Token-stream format and its error cases
- JSON document format, including list-shaped entries
- Format detection and file / stdin / URL sources
"""

import io
import json
import os
import sys
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx
import pytest

from cashflow.config import SettleConfig
from cashflow.errors import CashflowError, ConfigurationError, InputError
from cashflow.ingest import (
    detect_format,
    load_input,
    parse_document,
    parse_text,
    parse_token_stream,
    read_source,
)


TOKENS = """
3
Treasurer 1 upi-a
Asha 2 upi-a upi-b
Ravi 1 upi-b
2
Ravi Asha 10
Ravi Treasurer 5
"""

DOCUMENT = {
    "participants": [
        {"name": "Treasurer", "channels": ["upi-a"]},
        {"name": "Asha", "channels": ["upi-a", "upi-b"]},
        {"name": "Ravi", "channels": ["upi-b"]},
    ],
    "debts": [
        {"debtor": "Ravi", "creditor": "Asha", "amount": 10},
        {"debtor": "Ravi", "creditor": "Treasurer", "amount": 5},
    ],
}


# =============================================================================
# TOKEN STREAM
# =============================================================================

class TestTokenStream:

    def test_parses_participants_and_debts(self):
        registry, ledger = parse_token_stream(TOKENS)
        assert registry.names == ["Treasurer", "Asha", "Ravi"]
        assert registry.treasurer.channels == {"upi-a", "upi-b"}
        assert ledger.records() == [
            {"debtor": "Ravi", "creditor": "Asha", "amount": 10},
            {"debtor": "Ravi", "creditor": "Treasurer", "amount": 5},
        ]

    def test_line_breaks_are_not_significant(self):
        registry, ledger = parse_token_stream("2 T 1 a P 1 a 1 P T 4")
        assert registry.names == ["T", "P"]
        assert ledger.total() == 4

    def test_zero_debts(self):
        registry, ledger = parse_token_stream("2\nT 1 a\nP 1 a\n0\n")
        assert len(ledger) == 0

    def test_treasurer_with_zero_channels(self):
        registry, _ = parse_token_stream("2\nT 0\nP 2 x y\n0\n")
        assert registry.treasurer.channels == {"x", "y"}

    @pytest.mark.parametrize("text", ["1\nT 1 a\n0\n", "0\n", "-3\n"])
    def test_too_few_participants(self, text):
        with pytest.raises(ConfigurationError, match="at least 2"):
            parse_token_stream(text)

    def test_empty_input(self):
        with pytest.raises(ConfigurationError, match="participant count"):
            parse_token_stream("")

    def test_non_integer_participant_count(self):
        with pytest.raises(ConfigurationError, match="must be an integer"):
            parse_token_stream("two\nT 1 a\nP 1 a\n0\n")

    def test_negative_channel_count(self):
        with pytest.raises(ConfigurationError, match="must not be negative"):
            parse_token_stream("2\nT -1\nP 1 a\n0\n")

    def test_truncated_participant_entry(self):
        with pytest.raises(ConfigurationError, match="unexpected end of input"):
            parse_token_stream("2\nT 1 a\nP 3 a b")

    def test_missing_debt_count(self):
        with pytest.raises(InputError, match="debt count"):
            parse_token_stream("2\nT 1 a\nP 1 a\n")

    def test_malformed_debt_count(self):
        with pytest.raises(InputError, match="debt count must be an integer"):
            parse_token_stream("2\nT 1 a\nP 1 a\nmany\n")

    def test_negative_debt_count(self):
        with pytest.raises(InputError, match="must not be negative"):
            parse_token_stream("2\nT 1 a\nP 1 a\n-1\n")

    def test_truncated_debt(self):
        with pytest.raises(InputError, match="unexpected end of input"):
            parse_token_stream("2\nT 1 a\nP 1 a\n2\nP T 5\nP T\n")

    @pytest.mark.parametrize("amount", ["0", "-4"])
    def test_non_positive_amount(self, amount):
        with pytest.raises(InputError, match="positive"):
            parse_token_stream(f"2\nT 1 a\nP 1 a\n1\nP T {amount}\n")

    def test_non_integer_amount(self):
        with pytest.raises(InputError, match="amount of debt 1 must be an integer"):
            parse_token_stream("2\nT 1 a\nP 1 a\n1\nP T 2.5\n")

    def test_unknown_participant(self):
        with pytest.raises(InputError, match="unknown participant 'Zed'"):
            parse_token_stream("2\nT 1 a\nP 1 a\n1\nZed T 5\n")

    def test_trailing_input_rejected(self):
        with pytest.raises(InputError, match="trailing input"):
            parse_token_stream("2\nT 1 a\nP 1 a\n1\nP T 5\nP T 6\n")

    def test_self_debt_policy_applied(self):
        text = "2\nT 1 a\nP 1 a\n1\nP P 5\n"
        _, ledger = parse_token_stream(text)
        assert len(ledger) == 1
        with pytest.raises(InputError, match="cannot owe themselves"):
            parse_token_stream(text, SettleConfig(self_debt_policy="reject"))


# =============================================================================
# JSON DOCUMENT
# =============================================================================

class TestDocument:

    def test_parses_object_entries(self):
        registry, ledger = parse_document(DOCUMENT)
        assert registry.names == ["Treasurer", "Asha", "Ravi"]
        assert ledger.matrix[2][1] == 10
        assert ledger.matrix[2][0] == 5

    def test_parses_list_entries(self):
        doc = {
            "participants": [["T", ["a"]], ["P", ["b"]]],
            "debts": [["P", "T", 3]],
        }
        registry, ledger = parse_document(doc)
        assert registry.treasurer.channels == {"a", "b"}
        assert ledger.total() == 3

    def test_debts_optional(self):
        _, ledger = parse_document({"participants": DOCUMENT["participants"]})
        assert len(ledger) == 0

    def test_document_must_be_object(self):
        with pytest.raises(ConfigurationError, match="JSON object"):
            parse_document([1, 2])

    def test_participants_required(self):
        with pytest.raises(ConfigurationError, match="participants"):
            parse_document({"debts": []})

    def test_single_participant_rejected(self):
        with pytest.raises(ConfigurationError, match="at least 2"):
            parse_document({"participants": [{"name": "T", "channels": ["a"]}]})

    def test_participant_without_name(self):
        doc = {"participants": [{"channels": ["a"]}, {"name": "P", "channels": ["a"]}]}
        with pytest.raises(ConfigurationError, match="has no name"):
            parse_document(doc)

    def test_participant_channels_must_be_list(self):
        doc = {"participants": [{"name": "T", "channels": "a"}, {"name": "P", "channels": ["a"]}]}
        with pytest.raises(ConfigurationError, match="must be a list"):
            parse_document(doc)

    def test_member_without_channels(self):
        doc = {"participants": [{"name": "T", "channels": ["a"]}, {"name": "P"}]}
        with pytest.raises(ConfigurationError, match="at least one channel"):
            parse_document(doc)

    def test_malformed_participant_entry(self):
        doc = {"participants": ["T", "P"]}
        with pytest.raises(ConfigurationError, match="malformed"):
            parse_document(doc)

    def test_debts_must_be_list(self):
        doc = dict(DOCUMENT, debts={"debtor": "Ravi"})
        with pytest.raises(InputError, match="must be a list"):
            parse_document(doc)

    def test_debt_missing_fields(self):
        doc = dict(DOCUMENT, debts=[{"debtor": "Ravi", "creditor": "Asha"}])
        with pytest.raises(InputError, match="missing amount"):
            parse_document(doc)

    def test_malformed_debt_entry(self):
        doc = dict(DOCUMENT, debts=[["Ravi", "Asha"]])
        with pytest.raises(InputError, match="malformed"):
            parse_document(doc)

    def test_string_amount_rejected(self):
        doc = dict(DOCUMENT, debts=[{"debtor": "Ravi", "creditor": "Asha", "amount": "10"}])
        with pytest.raises(InputError, match="integer"):
            parse_document(doc)

    def test_padded_names_resolve_in_debts(self):
        doc = {
            "participants": [{"name": " T ", "channels": ["a"]}, {"name": " P1 ", "channels": ["a"]}],
            "debts": [{"debtor": " P1 ", "creditor": "T", "amount": 4}],
        }
        registry, ledger = parse_document(doc)
        assert registry.names == ["T", "P1"]
        assert ledger.records() == [{"debtor": "P1", "creditor": "T", "amount": 4}]


# =============================================================================
# SOURCES
# =============================================================================

class TestSources:

    def test_detect_format(self):
        assert detect_format('  {"participants": []}') == "json"
        assert detect_format("3\nT 1 a") == "tokens"

    def test_parse_text_auto(self):
        registry_a, ledger_a = parse_text(TOKENS)
        registry_b, ledger_b = parse_text(json.dumps(DOCUMENT))
        assert registry_a.names == registry_b.names
        assert ledger_a.fingerprint() == ledger_b.fingerprint()

    def test_parse_text_invalid_json(self):
        with pytest.raises(InputError, match="invalid JSON"):
            parse_text("{not json", fmt="json")

    def test_parse_text_unknown_format(self):
        with pytest.raises(ConfigurationError, match="unknown input format"):
            parse_text(TOKENS, fmt="yaml")

    def test_load_input_from_file(self, tmp_path):
        path = tmp_path / "group.json"
        path.write_text(json.dumps(DOCUMENT))
        registry, ledger = load_input(str(path))
        assert len(registry) == 3
        assert ledger.total() == 15

    def test_load_input_missing_file(self, tmp_path):
        with pytest.raises(CashflowError, match="cannot read input"):
            load_input(str(tmp_path / "missing.txt"))

    def test_non_utf8_file_is_input_error(self, tmp_path):
        path = tmp_path / "group.txt"
        path.write_bytes(b"2\nT 1 a\nP\xff 1 a\n0\n")
        with pytest.raises(InputError, match="not valid UTF-8"):
            load_input(str(path))

    def test_non_utf8_stdin_is_input_error(self, monkeypatch):
        stdin = io.TextIOWrapper(io.BytesIO(b"2 T 1 a P\xff 1 a 0"), encoding="utf-8")
        monkeypatch.setattr("sys.stdin", stdin)
        with pytest.raises(InputError, match="cannot read input stdin"):
            read_source("-")

    def test_read_source_stream(self):
        assert read_source(io.StringIO("2 T 1 a P 1 a 0")) == "2 T 1 a P 1 a 0"

    def test_read_source_stdin(self, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO(TOKENS))
        registry, _ = load_input("-")
        assert registry.names == ["Treasurer", "Asha", "Ravi"]

    def test_load_input_from_url(self):
        response = MagicMock()
        response.text = TOKENS
        with patch("cashflow.ingest.httpx.get", return_value=response) as get:
            registry, ledger = load_input(
                "https://example.test/group.txt", config=SettleConfig(http_timeout=5)
            )
        get.assert_called_once_with("https://example.test/group.txt", timeout=5, follow_redirects=True)
        response.raise_for_status.assert_called_once()
        assert ledger.total() == 15

    def test_url_transport_error(self):
        with patch("cashflow.ingest.httpx.get", side_effect=httpx.ConnectError("refused")):
            with pytest.raises(CashflowError, match="cannot fetch input"):
                read_source("http://example.test/group.txt")

    def test_url_http_status_error(self):
        response = MagicMock()
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "404 Not Found", request=MagicMock(), response=MagicMock()
        )
        with patch("cashflow.ingest.httpx.get", return_value=response):
            with pytest.raises(CashflowError, match="404"):
                read_source("http://example.test/missing.txt")
