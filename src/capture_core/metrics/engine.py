"""Reconciliation and aggregation of orders and profiles into capture metrics.

Attribution precedence for a profile:
- Manual: ``associate-sign-up-attribution`` metadata, resolved to a known
  associate by fuzzy name match (or a "Manual Entry - <name>" bucket)
- Order: staff member on the customer's earliest paid order
- Fallback: "Wedding Leads (No Orders)" or "Company (No Orders)"

Rates are computed from summed counts, never by averaging per-bucket rates.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from ..schemas.metrics import (
    AggregateMetrics,
    CompanyMetrics,
    MetricsResult,
    StaffMetrics,
)
from ..schemas.records import UNKNOWN_STAFF, CustomerProfile, Order
from .name_matching import DEFAULT_THRESHOLD, find_best_match


logger = logging.getLogger(__name__)


MANUAL_ENTRY_PREFIX = "Manual Entry - "
COMPANY_NO_ORDERS = "Company (No Orders)"
WEDDING_LEADS_NO_ORDERS = "Wedding Leads (No Orders)"

STAFF_AGGREGATE_LABEL = "Associate Data Capture Rate"
COMPANY_AGGREGATE_LABEL = "Company Data Capture Rate"
COMPANY_LESS_WEDDINGS_LABEL = "Company Data Capture Rate Less Wedding Leads"


@dataclass
class BucketAccumulator:
    """Working state for one attribution bucket.

    Category sets hold profile ids so each profile counts at most once.
    """

    created: set[str] = field(default_factory=set)
    with_email: set[str] = field(default_factory=set)
    with_phone: set[str] = field(default_factory=set)
    with_data: set[str] = field(default_factory=set)
    with_data_no_wedding: set[str] = field(default_factory=set)
    subscribed: set[str] = field(default_factory=set)
    subscribed_no_wedding: set[str] = field(default_factory=set)
    wedding_tagged: set[str] = field(default_factory=set)
    manual: set[str] = field(default_factory=set)
    order_count: int = 0
    guest_count: int = 0


AccumulatorMap = dict[str, BucketAccumulator]


def bucket(accumulators: AccumulatorMap, name: str) -> BucketAccumulator:
    """Get or create the accumulator for a bucket."""
    if name not in accumulators:
        accumulators[name] = BucketAccumulator()
    return accumulators[name]


def round_rate(value: float) -> float:
    """Round to 2 decimal places, halves away from zero."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def rate(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return round_rate(numerator / denominator * 100)


def extract_manual_attributions(profiles: Iterable[CustomerProfile]) -> dict[str, str]:
    """Map profile id -> raw staff name typed into the sign-up tool."""
    manual: dict[str, str] = {}
    for profile in profiles:
        attributed = profile.manual_attribution
        if profile.id and attributed:
            manual[profile.id] = attributed
    return manual


def derive_known_staff(orders: Iterable[Order]) -> list[str]:
    """Staff display names seen on orders, in first-seen order."""
    known: dict[str, None] = {}
    for order in orders:
        name = order.staff_name
        if name != UNKNOWN_STAFF:
            known[name] = None
    return list(known)


def resolve_manual_buckets(
    manual: dict[str, str],
    known_staff: list[str],
    threshold: float = DEFAULT_THRESHOLD,
) -> dict[str, str]:
    """Resolve manually attributed profiles to their bucket names."""
    resolved: dict[str, str] = {}
    for profile_id, raw_name in manual.items():
        result = find_best_match(raw_name, known_staff, threshold=threshold)
        if result:
            logger.debug(
                'Matched "%s" to "%s" (%s, confidence %.1f%%)',
                raw_name,
                result.match,
                result.rule,
                result.confidence,
            )
            resolved[profile_id] = result.match
        else:
            logger.debug('Could not match "%s" to any known associate', raw_name)
            resolved[profile_id] = f"{MANUAL_ENTRY_PREFIX}{raw_name}"
    return resolved


def extract_wedding_profiles(
    profiles: Iterable[CustomerProfile], wedding_tag_id: Optional[str]
) -> set[str]:
    if not wedding_tag_id:
        return set()
    return {
        profile.id
        for profile in profiles
        if profile.id and profile.has_tag(wedding_tag_id)
    }


def assign_order_buckets(
    orders: Iterable[Order], manual_buckets: dict[str, str]
) -> dict[str, str]:
    """Map customer id -> bucket from order history.

    The earliest order wins; manual attribution wins over any order.
    """
    assignments: dict[str, str] = {}
    for order in sorted(orders, key=lambda o: o.sort_key):
        customer_id = order.customer_id
        if not customer_id or customer_id in assignments:
            continue
        assignments[customer_id] = manual_buckets.get(customer_id, order.staff_name)
    return assignments


def accumulate_orders(
    accumulators: AccumulatorMap,
    orders: Iterable[Order],
    guest_skus: set[str],
) -> AccumulatorMap:
    """Count orders and guest line items against each order's staff bucket."""
    for order in orders:
        stats = bucket(accumulators, order.staff_name)
        stats.order_count += 1
        for item in order.items:
            if item.product_id in guest_skus:
                stats.guest_count += item.quantity
    return accumulators


def classify_profiles(
    accumulators: AccumulatorMap,
    profiles: Iterable[CustomerProfile],
    manual_buckets: dict[str, str],
    order_buckets: dict[str, str],
    wedding_profiles: set[str],
) -> AccumulatorMap:
    """Place every profile in exactly one bucket and mark its categories."""
    for profile in profiles:
        profile_id = profile.id
        if not profile_id:
            continue

        is_wedding = profile_id in wedding_profiles
        if profile_id in manual_buckets:
            name = manual_buckets[profile_id]
        elif profile_id in order_buckets:
            name = order_buckets[profile_id]
        elif is_wedding:
            name = WEDDING_LEADS_NO_ORDERS
        else:
            name = COMPANY_NO_ORDERS

        stats = bucket(accumulators, name)
        stats.created.add(profile_id)

        if profile_id in manual_buckets:
            stats.manual.add(profile_id)

        has_email = bool(profile.contact_emails())
        has_phone = bool(profile.contact_phones())

        if has_email:
            stats.with_email.add(profile_id)
        if has_phone:
            stats.with_phone.add(profile_id)
        if has_email or has_phone:
            stats.with_data.add(profile_id)
            if not is_wedding:
                stats.with_data_no_wedding.add(profile_id)

        if profile.is_subscribed:
            stats.subscribed.add(profile_id)
            if not is_wedding:
                stats.subscribed_no_wedding.add(profile_id)

        if is_wedding:
            stats.wedding_tagged.add(profile_id)

    return accumulators


def build_staff_rows(accumulators: AccumulatorMap) -> list[StaffMetrics]:
    """Per-bucket rows, sorted by capture rate (highest first)."""
    rows = [
        StaffMetrics(
            name=name,
            profiles_created=len(stats.created),
            manual_profiles=len(stats.manual),
            profiles_with_email=len(stats.with_email),
            profiles_with_phone=len(stats.with_phone),
            profiles_with_data=len(stats.with_data),
            profiles_with_data_no_wedding=len(stats.with_data_no_wedding),
            profiles_with_subscription=len(stats.subscribed),
            profiles_with_subscription_no_wedding=len(stats.subscribed_no_wedding),
            profiles_with_wedding_tag=len(stats.wedding_tagged),
            guest_count=stats.guest_count,
            total_orders=stats.order_count,
            capture_rate=rate(len(stats.with_data), stats.guest_count),
            subscription_rate=rate(len(stats.subscribed), stats.guest_count),
        )
        for name, stats in accumulators.items()
    ]
    return sorted(rows, key=lambda row: row.capture_rate, reverse=True)


def aggregate(
    label: str,
    rows: list[StaffMetrics],
    exclude_weddings: bool = False,
) -> AggregateMetrics:
    """Pool counts across rows, then divide.

    With ``exclude_weddings`` the with-data and subscribed numerators use the
    wedding-exclusive counts while the guest denominator stays the full sum.
    """
    if exclude_weddings:
        with_data = sum(row.profiles_with_data_no_wedding for row in rows)
        subscribed = sum(row.profiles_with_subscription_no_wedding for row in rows)
        wedding_tagged = 0
    else:
        with_data = sum(row.profiles_with_data for row in rows)
        subscribed = sum(row.profiles_with_subscription for row in rows)
        wedding_tagged = sum(row.profiles_with_wedding_tag for row in rows)

    guests = sum(row.guest_count for row in rows)

    return AggregateMetrics(
        label=label,
        bucket_count=len(rows),
        profiles_created=sum(row.profiles_created for row in rows),
        manual_profiles=sum(row.manual_profiles for row in rows),
        profiles_with_email=sum(row.profiles_with_email for row in rows),
        profiles_with_phone=sum(row.profiles_with_phone for row in rows),
        profiles_with_data=with_data,
        profiles_with_subscription=subscribed,
        profiles_with_wedding_tag=wedding_tagged,
        guest_count=guests,
        total_orders=sum(row.total_orders for row in rows),
        capture_rate=rate(with_data, guests),
        subscription_rate=rate(subscribed, guests),
    )


def build_company_metrics(rows: list[StaffMetrics]) -> CompanyMetrics:
    """Staff-only, company-wide and company-less-weddings aggregates.

    The staff aggregate only covers buckets with guests, so the
    "(No Orders)" fallback buckets count toward company totals but never
    toward the associate rate.
    """
    return CompanyMetrics(
        staff=aggregate(
            STAFF_AGGREGATE_LABEL, [row for row in rows if row.guest_count > 0]
        ),
        company=aggregate(COMPANY_AGGREGATE_LABEL, rows),
        company_less_weddings=aggregate(
            COMPANY_LESS_WEDDINGS_LABEL, rows, exclude_weddings=True
        ),
    )


def format_period(start: datetime, end: datetime) -> str:
    return f"{start:%b %d, %Y} - {end:%b %d, %Y}"


def compute_metrics(
    orders: list[Order],
    profiles: list[CustomerProfile],
    guest_skus: Iterable[str],
    wedding_tag_id: Optional[str],
    start: datetime,
    end: datetime,
    match_threshold: float = DEFAULT_THRESHOLD,
    generated_at: Optional[datetime] = None,
) -> MetricsResult:
    """Reconcile attribution sources and compute capture metrics.

    Args:
        orders: Orders paid in the range
        profiles: Customer profiles created in the range
        guest_skus: Product ids whose quantity counts guests
        wedding_tag_id: Tag id marking wedding leads
        start: Range start (for the period label)
        end: Range end (for the period label)
        match_threshold: Fuzzy name match threshold (0-100)
        generated_at: Result timestamp (defaults to now, UTC)

    Returns:
        MetricsResult with per-bucket rows and company aggregates
    """
    guest_sku_set = set(guest_skus)

    manual = extract_manual_attributions(profiles)
    known_staff = derive_known_staff(orders)
    manual_buckets = resolve_manual_buckets(manual, known_staff, match_threshold)
    wedding_profiles = extract_wedding_profiles(profiles, wedding_tag_id)
    order_buckets = assign_order_buckets(orders, manual_buckets)

    accumulators: AccumulatorMap = {}
    accumulate_orders(accumulators, orders, guest_sku_set)
    classify_profiles(
        accumulators, profiles, manual_buckets, order_buckets, wedding_profiles
    )

    rows = build_staff_rows(accumulators)
    company = build_company_metrics(rows)

    logger.info(
        "Computed metrics: %s orders, %s profiles (%s manual, %s wedding leads), "
        "%s buckets, guests=%s, company capture=%.2f%%",
        len(orders),
        len(profiles),
        len(manual),
        len(wedding_profiles),
        len(rows),
        company.company.guest_count,
        company.company.capture_rate,
    )
    if company.company.guest_count == 0:
        logger.warning(
            "No guest counts found; check that guest SKUs appear on orders"
        )

    return MetricsResult(
        period=format_period(start, end),
        start_date=start,
        end_date=end,
        staff=rows,
        company=company,
        generated_at=generated_at or datetime.now(timezone.utc),
    )
