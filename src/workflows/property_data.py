"""Helpers that turn a scraped listing snapshot into entity fields."""

from typing import Any, Optional

from src.executor.schemas import PropertyStats


def _as_list(value: Any) -> list:
    return list(value) if isinstance(value, list) else []


def compile_property_data(snapshot: dict) -> tuple[str, PropertyStats]:
    """Return (location, stats) for a listing snapshot.

    Location is street, city, state and zipcode joined with ", ",
    skipping missing parts.
    """
    address = snapshot.get("address") or {}
    location = ", ".join(
        str(part) for part in (
            address.get("streetAddress"),
            address.get("city"),
            address.get("state"),
            address.get("zipcode"),
        )
        if part
    )

    hoa = snapshot.get("hoa_details") or {}
    stats = PropertyStats(
        price=snapshot.get("price"),
        bedrooms=snapshot.get("bedrooms"),
        bathrooms=snapshot.get("bathrooms"),
        square_feet=snapshot.get("livingArea"),
        lot_size=snapshot.get("lotSize"),
        year_built=snapshot.get("yearBuilt"),
        lat=snapshot.get("latitude"),
        lon=snapshot.get("longitude"),
        mls_id=snapshot.get("mls_id"),
        home_type=snapshot.get("homeType") or snapshot.get("home_type"),
        description=snapshot.get("description"),
        overview=snapshot.get("overview"),
        meta=(
            _as_list(snapshot.get("property"))
            + _as_list(snapshot.get("construction"))
            + _as_list(snapshot.get("interior_full"))
        ) or None,
        hoa_details={
            "has_hoa": hoa.get("has_hoa"),
            "hoa_fee_value": hoa.get("hoa_fee_value"),
            "hoa_fee_currency": hoa.get("hoa_fee_currency"),
            "hoa_fee_period": hoa.get("hoa_fee_period"),
            "services_included": hoa.get("services_included"),
            "amenities_included": hoa.get("amenities_included"),
        } if hoa else None,
    )
    return location, stats


def _largest_jpeg(photo: dict) -> Optional[str]:
    # Sources are ordered smallest to largest
    sources = ((photo.get("mixedSources") or {}).get("jpeg")) or []
    if not sources:
        return None
    return (sources[-1] or {}).get("url")


def extract_photo_urls(snapshot: dict) -> list[str]:
    """Largest JPEG URL of every listing photo, in listing order, deduplicated."""
    urls: list[str] = []
    for photo in snapshot.get("photos") or []:
        url = _largest_jpeg(photo) if isinstance(photo, dict) else None
        if url and url not in urls:
            urls.append(url)
    return urls
