import pytest

from storefront.domain.attributes import SelectedAttributes
from storefront.domain.errors import ValidationError
from storefront.domain.identity import CartIdentity
from storefront.services.inventory_service import VariantKey


def test_canonical_form_ignores_order_and_case():
    a = SelectedAttributes.from_mapping({"Size": " M ", "color": "Red"})
    b = SelectedAttributes.from_mapping({"color": "Red", "size": "M"})

    assert a == b
    assert hash(a) == hash(b)
    assert a.canonical() == b.canonical() == '{"color":"Red","size":"M"}'


def test_canonical_round_trip_and_empty():
    attrs = SelectedAttributes.from_mapping({"size": "L"})
    assert SelectedAttributes.from_canonical(attrs.canonical()) == attrs
    assert SelectedAttributes.from_mapping(None).canonical() == "{}"
    assert SelectedAttributes.from_canonical("{}") == SelectedAttributes()


def test_none_values_are_dropped_and_blank_values_rejected():
    assert SelectedAttributes.from_mapping({"size": None}).as_dict() == {}
    with pytest.raises(ValidationError):
        SelectedAttributes.from_mapping({"size": "  "})
    with pytest.raises(ValidationError):
        SelectedAttributes.from_mapping({" ": "M"})


def test_variant_key_uses_size():
    assert VariantKey.for_line(7, SelectedAttributes.from_mapping({"size": "M", "color": "Red"})) == VariantKey(7, "M")
    assert VariantKey.for_line(7, SelectedAttributes()) == VariantKey(7, "")


def test_identity_is_exclusive():
    assert CartIdentity.for_user(5).key == "user:5"
    assert CartIdentity.for_guest("abc").key == "session:abc"
    assert not CartIdentity.for_guest("abc").is_registered

    with pytest.raises(ValidationError):
        CartIdentity(user_id=1, session_id="abc")
    with pytest.raises(ValidationError):
        CartIdentity()
    with pytest.raises(ValidationError):
        CartIdentity.for_guest("   ")
