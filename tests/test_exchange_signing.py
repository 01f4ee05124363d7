import hashlib
import hmac
import itertools

from supa_vault.exchange.signing import build_signature_payload, canonicalize, sign


def test_canonicalize_is_independent_of_key_order() -> None:
    items = [
        ("instrument_name", "CROUSD-PERP"),
        ("side", "BUY"),
        ("quantity", "10.5"),
        ("price", "0.1005"),
    ]
    outputs = {canonicalize(dict(perm)) for perm in itertools.permutations(items)}
    assert outputs == {"instrument_nameCROUSD-PERPprice0.1005quantity10.5sideBUY"}


def test_canonicalize_nested_mapping_is_sorted_at_every_level() -> None:
    a = {"z": 1, "a": {"y": "2", "b": "3"}}
    b = {"a": {"b": "3", "y": "2"}, "z": 1}
    assert canonicalize(a) == canonicalize(b) == "ab3y2z1"


def test_canonicalize_skips_nulls_and_renders_arrays_positionally() -> None:
    params = {
        "orders": [{"side": "SELL", "note": None}, None, "x"],
        "missing": None,
        "flag": True,
    }
    assert canonicalize(params) == "flagtrueorderssideSELLx"


def test_canonicalize_integral_float_has_no_trailing_zero() -> None:
    assert canonicalize({"quantity": 2.0, "price": 0.25}) == "price0.25quantity2"


def test_canonicalize_empty_params() -> None:
    assert canonicalize({}) == ""


def test_build_signature_payload_concatenation_order() -> None:
    payload = build_signature_payload(
        "private/create-order", 11, "key", {"side": "BUY"}, 1587846358253
    )
    assert payload == "private/create-order11keysideBUY1587846358253"


def test_sign_is_pure_and_matches_hmac_sha256() -> None:
    params = {"instrument_name": "CROUSD-PERP", "type": "MARKET"}
    first = sign("private/close-position", 7, "key", params, 7, "secret")
    second = sign("private/close-position", 7, "key", dict(reversed(list(params.items()))), 7, "secret")
    expected = hmac.new(
        b"secret",
        b"private/close-position7keyinstrument_nameCROUSD-PERPtypeMARKET7",
        hashlib.sha256,
    ).hexdigest()
    assert first == second == expected
    assert first == first.lower()
