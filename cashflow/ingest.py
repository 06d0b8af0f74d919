"""
Input parsing for participants and debts.

Two input shapes are supported:

1) Token stream (whitespace separated, line breaks are not significant):

       <n>
       <name> <k> <channel_1> ... <channel_k>     (n times, Treasurer first)
       <m>
       <debtor> <creditor> <amount>               (m times)

2) JSON document:

       {"participants": [{"name": "T", "channels": ["upi-a"]}, ...],
        "debts": [{"debtor": "P1", "creditor": "P2", "amount": 7}, ...]}

   Participants may also be given as [name, [channels...]] pairs and debts as
   [debtor, creditor, amount] triples.

Input is read from a file, stdin, or an http(s) URL (fetched with httpx).

Participant problems raise ConfigurationError, debt problems raise InputError.
Either aborts the run before any balance is netted.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, IO, List, Optional, Tuple, Union

import httpx

from cashflow.config import LOG_LEVELS, SettleConfig
from cashflow.errors import CashflowError, ConfigurationError, InputError
from cashflow.netting import DebtLedger
from cashflow.registry import ParticipantRegistry


VALID_INPUT_FORMATS = frozenset({"auto", "tokens", "json"})

logger = logging.getLogger("cashflow.ingest")


def _log(msg: str, level: str = 'debug') -> None:
    logger.log(LOG_LEVELS[level], f"cashflow: ingest: {msg}")


# =============================================================================
# TOKEN STREAM
# =============================================================================

class _TokenCursor:
    """Sequential reader over whitespace-separated tokens."""

    def __init__(self, text: str):
        self._tokens = text.split()
        self._pos = 0

    def next(self, what: str, error: type) -> str:
        if self._pos >= len(self._tokens):
            raise error(f"unexpected end of input while reading {what}")
        token = self._tokens[self._pos]
        self._pos += 1
        return token

    def next_int(self, what: str, error: type) -> int:
        token = self.next(what, error)
        try:
            return int(token)
        except ValueError:
            raise error(f"{what} must be an integer, got {token!r}") from None

    def remaining(self) -> List[str]:
        return self._tokens[self._pos:]


def parse_token_stream(
    text: str,
    config: Optional[SettleConfig] = None,
) -> Tuple[ParticipantRegistry, DebtLedger]:
    """Parse the whitespace-separated participants-then-debts format."""
    config = config or SettleConfig()
    cursor = _TokenCursor(text)

    count = cursor.next_int("participant count", ConfigurationError)
    if count < 2:
        raise ConfigurationError(f"at least 2 participants required, got {count}")

    registry = ParticipantRegistry()
    for i in range(count):
        name = cursor.next(f"name of participant {i + 1}", ConfigurationError)
        k = cursor.next_int(f"channel count for {name}", ConfigurationError)
        if k < 0:
            raise ConfigurationError(f"channel count for {name} must not be negative, got {k}")
        channels = [cursor.next(f"channel {j + 1} of {name}", ConfigurationError) for j in range(k)]
        registry.register(name, channels)
    registry.seal()

    ledger = DebtLedger(registry, reject_self_debts=config.rejects_self_debts)
    m = cursor.next_int("debt count", InputError)
    if m < 0:
        raise InputError(f"debt count must not be negative, got {m}")
    for i in range(m):
        debtor = cursor.next(f"debtor of debt {i + 1}", InputError)
        creditor = cursor.next(f"creditor of debt {i + 1}", InputError)
        amount = cursor.next_int(f"amount of debt {i + 1}", InputError)
        ledger.add(debtor, creditor, amount)

    leftover = cursor.remaining()
    if leftover:
        raise InputError(f"unexpected trailing input after {m} debts: {' '.join(leftover[:5])}")

    _log(f"parsed {len(registry)} participants and {len(ledger)} debts from token stream")
    return registry, ledger


# =============================================================================
# JSON DOCUMENT
# =============================================================================

def _coerce_participant(entry: Any, position: int) -> Tuple[str, List[str]]:
    if isinstance(entry, dict):
        name = entry.get("name")
        channels = entry.get("channels", [])
    elif isinstance(entry, (list, tuple)) and len(entry) == 2:
        name, channels = entry
    else:
        raise ConfigurationError(f"participant entry {position} is malformed: {entry!r}")

    if not isinstance(name, str):
        raise ConfigurationError(f"participant entry {position} has no name")
    if not isinstance(channels, (list, tuple)):
        raise ConfigurationError(f"channels for {name!r} must be a list")
    return name, list(channels)


def _coerce_debt(entry: Any, position: int) -> Tuple[Any, Any, Any]:
    if isinstance(entry, dict):
        missing = [k for k in ("debtor", "creditor", "amount") if k not in entry]
        if missing:
            raise InputError(f"debt entry {position} is missing {', '.join(missing)}")
        return entry["debtor"], entry["creditor"], entry["amount"]
    if isinstance(entry, (list, tuple)) and len(entry) == 3:
        return entry[0], entry[1], entry[2]
    raise InputError(f"debt entry {position} is malformed: {entry!r}")


def parse_document(
    doc: Dict[str, Any],
    config: Optional[SettleConfig] = None,
) -> Tuple[ParticipantRegistry, DebtLedger]:
    """Build a sealed registry and a filled ledger from a JSON-style document."""
    config = config or SettleConfig()
    if not isinstance(doc, dict):
        raise ConfigurationError("input document must be a JSON object")

    participants = doc.get("participants")
    if not isinstance(participants, list):
        raise ConfigurationError("input document needs a 'participants' list")
    if len(participants) < 2:
        raise ConfigurationError(f"at least 2 participants required, got {len(participants)}")

    registry = ParticipantRegistry.from_entries(
        _coerce_participant(entry, i + 1) for i, entry in enumerate(participants)
    )

    debts = doc.get("debts", [])
    if not isinstance(debts, list):
        raise InputError("'debts' must be a list")

    ledger = DebtLedger(registry, reject_self_debts=config.rejects_self_debts)
    for i, entry in enumerate(debts):
        ledger.add(*_coerce_debt(entry, i + 1))

    _log(f"parsed {len(registry)} participants and {len(ledger)} debts from document")
    return registry, ledger


# =============================================================================
# SOURCES
# =============================================================================

def detect_format(text: str) -> str:
    return "json" if text.lstrip().startswith("{") else "tokens"


def parse_text(
    text: str,
    fmt: str = "auto",
    config: Optional[SettleConfig] = None,
) -> Tuple[ParticipantRegistry, DebtLedger]:
    if fmt not in VALID_INPUT_FORMATS:
        raise ConfigurationError(f"unknown input format {fmt!r}")
    if fmt == "auto":
        fmt = detect_format(text)
    if fmt == "json":
        try:
            doc = json.loads(text)
        except json.JSONDecodeError as e:
            raise InputError(f"invalid JSON input: {e}") from None
        return parse_document(doc, config)
    return parse_token_stream(text, config)


def fetch_url(url: str, timeout: float = 30.0) -> str:
    """GET an http(s) input document."""
    try:
        r = httpx.get(url, timeout=timeout, follow_redirects=True)
        r.raise_for_status()
    except httpx.HTTPError as e:
        raise CashflowError(f"cannot fetch input {url}: {e}") from None
    _log(f"fetched {len(r.text)} bytes from {url}")
    return r.text


def read_source(source: Union[str, Path, IO[str], None], timeout: float = 30.0) -> str:
    """Read input text from a path, an http(s) URL, an open stream, or stdin for None / '-'."""
    if isinstance(source, str) and source.startswith(("http://", "https://")):
        return fetch_url(source, timeout)
    if source is None or source == "-":
        label = "stdin"
    elif hasattr(source, "read"):
        label = getattr(source, "name", "stream")
    else:
        label = source
    try:
        if source is None or source == "-":
            return sys.stdin.read()
        if hasattr(source, "read"):
            return source.read()
        return Path(source).read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise InputError(f"cannot read input {label}: not valid UTF-8 ({e.reason} at byte {e.start})") from None
    except OSError as e:
        raise CashflowError(f"cannot read input {label}: {e}") from None


def load_input(
    source: Union[str, Path, IO[str], None],
    fmt: str = "auto",
    config: Optional[SettleConfig] = None,
) -> Tuple[ParticipantRegistry, DebtLedger]:
    config = config or SettleConfig()
    return parse_text(read_source(source, config.http_timeout), fmt, config)

