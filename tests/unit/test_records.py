"""Unit tests for lenient Commerce7 record parsing."""
from datetime import datetime, timezone

from capture_core.schemas.records import CustomerProfile, Order


def test_order_parses_camel_case_payload():
    """Test a well-formed order maps onto snake_case fields."""
    order = Order.model_validate(
        {
            "id": "o1",
            "orderNumber": "1042",
            "orderPaidDate": "2025-01-05T18:30:00.000Z",
            "items": [{"productId": "sku-1", "quantity": "3"}],
            "salesAssociate": {"name": "Alice Cooper", "accountId": "a1"},
            "customer": {"id": "c1"},
        }
    )

    assert order.order_number == 1042
    assert order.paid_date == datetime(2025, 1, 5, 18, 30, tzinfo=timezone.utc)
    assert order.items[0].product_id == "sku-1"
    assert order.items[0].quantity == 3
    assert order.staff_name == "Alice Cooper"
    assert order.customer_id == "c1"


def test_order_malformed_fields_become_absent():
    """Test bad values are dropped instead of failing validation."""
    order = Order.model_validate(
        {
            "id": 17,
            "orderPaidDate": "not a date",
            "items": "nope",
            "salesAssociate": 42,
            "customer": "c1",
        }
    )

    assert order.id == "17"
    assert order.paid_date is None
    assert order.items == []
    assert order.staff_name == "Unknown"
    assert order.customer_id is None


def test_order_customer_id_fallback_and_string_associate():
    """Test customerId and a bare-string salesAssociate are accepted."""
    order = Order.model_validate({"customerId": "c9", "salesAssociate": "Bob Jones"})

    assert order.customer_id == "c9"
    assert order.staff_name == "Bob Jones"


def test_order_sort_key_falls_back_to_submitted_date():
    """Test chronological key prefers paid date, then submitted date."""
    submitted_only = Order.model_validate({"orderSubmittedDate": "2025-01-03T10:00:00Z"})
    neither = Order.model_validate({})

    assert submitted_only.sort_key == datetime(2025, 1, 3, 10, tzinfo=timezone.utc)
    assert neither.sort_key < submitted_only.sort_key


def test_line_item_bad_quantity_is_zero():
    """Test a non-numeric quantity counts as zero guests."""
    order = Order.model_validate({"items": [{"productId": "sku", "quantity": "many"}, "x"]})

    assert len(order.items) == 1
    assert order.items[0].quantity == 0


def test_profile_contacts_merge_lists_and_singles():
    """Test list and single contact fields merge without duplicates."""
    profile = CustomerProfile.model_validate(
        {
            "id": "c1",
            "email": "a@example.com",
            "emails": [{"email": "a@example.com"}, "b@example.com", {"email": ""}],
            "phones": [{"phone": "555-0101"}],
        }
    )

    assert profile.contact_emails() == ["a@example.com", "b@example.com"]
    assert profile.contact_phones() == ["555-0101"]


def test_profile_subscription_and_tags():
    """Test subscribed status and tag ids (prefix stripped)."""
    profile = CustomerProfile.model_validate(
        {
            "id": "c1",
            "emailMarketingStatus": "Subscribed",
            "tags": [{"id": "tag/wedding"}, "vip", {"title": "no id"}],
        }
    )

    assert profile.is_subscribed
    assert profile.tags == ["wedding", "vip"]
    assert profile.has_tag("wedding")
    assert profile.has_tag("tag/wedding")


def test_profile_manual_attribution():
    """Test the sign-up attribution metadata is read when it is text."""
    with_name = CustomerProfile.model_validate(
        {"id": "c1", "metaData": {"associate-sign-up-attribution": "  Alice  "}}
    )
    blank = CustomerProfile.model_validate(
        {"id": "c2", "metaData": {"associate-sign-up-attribution": "   "}}
    )
    bad_metadata = CustomerProfile.model_validate({"id": "c3", "metaData": ["x"]})

    assert with_name.manual_attribution == "Alice"
    assert blank.manual_attribution is None
    assert bad_metadata.metadata == {}
    assert bad_metadata.manual_attribution is None


def test_profile_without_contacts():
    """Test a bare profile has no contact data and is not subscribed."""
    profile = CustomerProfile.model_validate({"id": "c1", "emails": None})

    assert profile.contact_emails() == []
    assert profile.contact_phones() == []
    assert not profile.is_subscribed
    assert profile.name == ""
