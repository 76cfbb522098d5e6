"""Per-click events and the breakdowns shown on a link's analytics page.

Location comes from the country/city headers a CDN edge adds in front of
the app (Cloudflare or Vercel); without them a click counts as ``Unknown``.
"""
from urllib.parse import unquote

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from user_agents import parse

from zurl import models

UNKNOWN = "Unknown"

COUNTRY_HEADERS = ("cf-ipcountry", "x-vercel-ip-country")
CITY_HEADERS = ("cf-ipcity", "x-vercel-ip-city")


def _first_header(headers, names) -> str:
    for name in names:
        value = (headers.get(name) or "").strip()
        # Cloudflare sends XX for unknown and T1 for Tor
        if value and value not in ("XX", "T1"):
            return unquote(value)
    return UNKNOWN


def device_type(user_agent) -> str:
    if user_agent.is_bot:
        return "Bot"
    if user_agent.is_tablet:
        return "Tablet"
    if user_agent.is_mobile:
        return "Mobile"
    if user_agent.is_pc:
        return "Desktop"
    return "Other"


def describe_request(headers, client_host: str | None = None) -> dict:
    """Build the column values of a ``Click`` from request headers."""
    ua_string = headers.get("user-agent") or ""
    click = {
        "ip": client_host,
        "user_agent": ua_string[:512] or None,
        "referrer": (headers.get("referer") or None),
        "country": _first_header(headers, COUNTRY_HEADERS),
        "city": _first_header(headers, CITY_HEADERS),
        "browser": UNKNOWN,
        "os": UNKNOWN,
        "device": UNKNOWN,
    }
    if ua_string:
        user_agent = parse(ua_string)
        click["browser"] = user_agent.browser.family or UNKNOWN
        click["os"] = user_agent.os.family or UNKNOWN
        click["device"] = device_type(user_agent)
    return click


def _percentage(clicks: int, total: int) -> float:
    return round(clicks * 100 / total, 1) if total else 0.0


def _breakdown(db: Session, link_id: str, column, total: int) -> list[dict]:
    rows = db.execute(
        select(column, func.count(models.Click.id))
        .where(models.Click.link_id == link_id)
        .group_by(column)
    ).all()
    buckets = [
        {"name": name or UNKNOWN, "clicks": clicks, "percentage": _percentage(clicks, total)}
        for name, clicks in rows
    ]
    return sorted(buckets, key=lambda b: (-b["clicks"], b["name"]))


def link_analytics(db: Session, link_id: str) -> dict:
    total = db.execute(
        select(func.count(models.Click.id)).where(models.Click.link_id == link_id)
    ).scalar_one()

    city_rows = db.execute(
        select(models.Click.city, models.Click.country, func.count(models.Click.id))
        .where(models.Click.link_id == link_id)
        .group_by(models.Click.city, models.Click.country)
    ).all()
    cities = sorted(
        (
            {"name": city, "country": country, "clicks": clicks, "percentage": _percentage(clicks, total)}
            for city, country, clicks in city_rows
        ),
        key=lambda b: (-b["clicks"], b["name"], b["country"]),
    )

    return {
        "link_id": link_id,
        "total_clicks": total,
        "countries": _breakdown(db, link_id, models.Click.country, total),
        "cities": cities,
        "browsers": _breakdown(db, link_id, models.Click.browser, total),
        "operating_systems": _breakdown(db, link_id, models.Click.os, total),
        "devices": _breakdown(db, link_id, models.Click.device, total),
    }
