"""Field extraction from Binance API response bodies.

Every extractor takes the raw response body and returns plain values.
Malformed JSON, an unexpected shape, or a missing field yields the
caller-supplied or documented default; nothing here raises.

The OAuth API wraps payloads in an envelope:
    {"code": "000000", "message": null, "data": ..., "success": true}
while the public ticker endpoints return flat objects.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class ConvertQuote:
    """Quote returned by the convert endpoint."""

    quote_id: str = ""
    quote_price: str = ""
    total_fee: str = ""
    total_amount: str = ""


@dataclass
class DepositInfo:
    """Deposit address details for a coin."""

    address: str = ""
    url: str = ""


def _load_object(body: str) -> dict[str, Any] | None:
    """Parse a JSON object, returning None for anything else."""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError, ValueError):
        logger.debug("Response body is not valid JSON")
        return None
    if not isinstance(data, dict):
        logger.debug(f"Expected a JSON object, got {type(data).__name__}")
        return None
    return data


def _as_string(value: Any, default: str = "") -> str:
    """Render scalar JSON values as strings; anything else is the default."""
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, (str, int, float)):
        return str(value)
    return default


def _envelope_data(body: str) -> Any:
    data = _load_object(body)
    if data is None:
        return None
    return data.get("data")


def get_tokens_from_json(body: str, field: str) -> str:
    """Extract a token field ("access_token" or "refresh_token")."""
    data = _load_object(body)
    if data is None:
        return ""
    return _as_string(data.get(field))


def get_ticker_price_from_json(body: str, default: str = "0.00") -> str:
    data = _load_object(body)
    if data is None:
        return default
    return _as_string(data.get("price"), default)


def get_ticker_volume_from_json(body: str, default: str = "0") -> str:
    data = _load_object(body)
    if data is None:
        return default
    return _as_string(data.get("volume"), default)


def get_account_balances_from_json(body: str) -> dict[str, str]:
    """Map each asset to its free balance."""
    balances: dict[str, str] = {}
    entries = _envelope_data(body)
    if not isinstance(entries, list):
        return balances

    for entry in entries:
        if not isinstance(entry, dict):
            continue
        asset = _as_string(entry.get("asset"))
        free = _as_string(entry.get("free"))
        if asset and free:
            balances[asset] = free
    return balances


def get_quote_info_from_json(body: str) -> ConvertQuote:
    quote = _envelope_data(body)
    if not isinstance(quote, dict):
        return ConvertQuote()
    return ConvertQuote(
        quote_id=_as_string(quote.get("quoteId")),
        quote_price=_as_string(quote.get("quotePrice")),
        total_fee=_as_string(quote.get("totalFee")),
        total_amount=_as_string(quote.get("totalAmount")),
    )


def get_deposit_info_from_json(body: str) -> DepositInfo:
    info = _envelope_data(body)
    if not isinstance(info, dict):
        return DepositInfo()
    return DepositInfo(
        address=_as_string(info.get("address")),
        url=_as_string(info.get("url")),
    )


def get_confirm_status_from_json(body: str) -> tuple[bool, str]:
    """Extract the convert confirmation outcome.

    Returns:
        (success, error_message); the message is only set on failure
    """
    data = _load_object(body)
    if data is None:
        return False, ""

    success = data.get("success") is True
    if success:
        return True, ""
    return False, _as_string(data.get("message"))


def get_convert_assets_from_json(body: str) -> dict[str, list[str]]:
    """Map each convertible asset to the assets it can be converted into."""
    assets: dict[str, list[str]] = {}
    entries = _envelope_data(body)
    if not isinstance(entries, list):
        return assets

    for entry in entries:
        if not isinstance(entry, dict):
            continue
        name = _as_string(entry.get("assetName"))
        if not name:
            continue
        targets = []
        sub_selector = entry.get("subSelector")
        if not isinstance(sub_selector, list):
            sub_selector = []
        for sub in sub_selector:
            if isinstance(sub, dict):
                sub_name = _as_string(sub.get("assetName"))
                if sub_name:
                    targets.append(sub_name)
        assets[name] = targets
    return assets


def revoke_token_from_json(body: str) -> bool:
    data = _load_object(body)
    if data is None:
        return False
    return data.get("success") is True
