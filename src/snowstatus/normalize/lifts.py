"""Lift page adapters: page HTML -> LiftStatusPayload.

The resort page shows each lift twice, as a row of the status table and
as a lift icon whose file name encodes the lift and its state
(``.../lift/16_paradise_on.gif``). Both adapters resolve to the stable
lift ids of ``NOZAWA_LIFTS``; display names can change upstream.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from bs4 import BeautifulSoup

from snowstatus.cache.models import LiftEntry, LiftState, LiftStatusPayload, Subject
from snowstatus.errors import MalformedPayload

logger = logging.getLogger(__name__)

OPEN_SYMBOL = "○"
CLOSED_SYMBOL = "×"
SEASON_FINISHED_MARKERS = ("営業終了", "Season finished")


@dataclass(frozen=True)
class LiftInfo:
    """Catalog entry for one lift."""

    lift_id: int
    name: str
    priority: int
    icon: str  # icon file name prefix on the lift page


NOZAWA_LIFTS: tuple[LiftInfo, ...] = (
    LiftInfo(1, "Nagasaka Gondola", 1, "new_nagasaka_g"),
    LiftInfo(2, "Hikage Gondola", 1, "3_hikageG"),
    LiftInfo(3, "Yamabiko Quad", 2, "22_yamabikoF"),
    LiftInfo(4, "Yamabiko No 2 Quad", 2, "21_yamabiko02F"),
    LiftInfo(5, "Skyline Double", 2, "20_skyline"),
    LiftInfo(6, "Uenotaira Quad", 2, "17_uenotaira"),
    LiftInfo(7, "Paradise Quad", 2, "16_paradise"),
    LiftInfo(10, "Challenge Double", 3, "15_challenge"),
    LiftInfo(11, "Utopia Double", 3, "14_yutopia"),
    LiftInfo(12, "Kandahar Double", 3, "12_kandahar"),
    LiftInfo(14, "Hikage Triple", 3, "4_hikageT"),
    LiftInfo(15, "Yu road", 4, "13_yuroad"),
    LiftInfo(16, "Hikage Quad", 3, "5_hikageF"),
    LiftInfo(17, "Nagasaka Triple", 3, "7_nagasakaT"),
    LiftInfo(18, "Nagasaka Quad", 2, "23_nagasakaF"),
    LiftInfo(19, "Nagasaka gondola-link Double", 3, "9_nagasakaG"),
    LiftInfo(20, "Karasawa Double", 3, "10_karasawa"),
)


def is_off_season_page(html: str) -> bool:
    return any(marker in html for marker in SEASON_FINISHED_MARKERS)


def match_lift_label(label: str, catalog: tuple[LiftInfo, ...] = NOZAWA_LIFTS) -> Optional[LiftInfo]:
    """Resolve a table label to a catalog lift.

    An exact name wins; otherwise the longest catalog name contained in
    the label; otherwise a unique catalog name that contains the label.
    """
    label = label.strip()
    if not label:
        return None

    for info in catalog:
        if info.name == label:
            return info

    contained = [info for info in catalog if info.name in label]
    if contained:
        return max(contained, key=lambda info: len(info.name))

    containing = [info for info in catalog if label in info.name]
    if len(containing) == 1:
        return containing[0]
    return None


def match_lift_icon(src: str, catalog: tuple[LiftInfo, ...] = NOZAWA_LIFTS) -> Optional[LiftInfo]:
    """Resolve a lift icon URL to a catalog lift by its file name prefix."""
    filename = src.rsplit("/", 1)[-1]
    for info in catalog:
        if filename.startswith(f"{info.icon}_") or filename.startswith(f"{info.icon}."):
            return info
    return None


def _build_payload(
    found: dict[int, LiftEntry],
    off_season: bool,
    scraped_at: datetime,
    source: str,
) -> LiftStatusPayload:
    if not found:
        if not off_season:
            raise MalformedPayload(f"No known lifts found in the lift {source}", f"lift-{source}")
        logger.info("Lift page reports season finished; marking every lift closed")
        found = {
            info.lift_id: LiftEntry(
                lift_id=info.lift_id,
                name=info.name,
                status=LiftState.CLOSED,
                scraped_at=scraped_at,
                hours="Season finished",
                priority=info.priority,
            )
            for info in NOZAWA_LIFTS
        }

    lifts = sorted(found.values(), key=lambda lift: (lift.priority, lift.lift_id))
    logger.info(
        f"Parsed {len(lifts)} lifts from {source} "
        f"({sum(1 for lift in lifts if lift.is_open)} open, off-season: {off_season})"
    )
    return LiftStatusPayload(lifts=lifts, scraped_at=scraped_at, off_season=off_season)


def normalize_lift_table(raw: dict, subject: Subject, now: datetime) -> LiftStatusPayload:
    """Parse the lift status table.

    Rows have at least four cells: number, lift name, operating hours,
    status symbol. ○ is open; anything else, including × and rows whose
    hours say the season is finished, is closed.
    """
    html = raw["html"]
    off_season = is_off_season_page(html)
    soup = BeautifulSoup(html, "html.parser")

    found: dict[int, LiftEntry] = {}
    for row in soup.select("table tr"):
        cells = row.find_all("td")
        if len(cells) < 4:
            continue
        info = match_lift_label(cells[1].get_text(strip=True))
        if info is None or info.lift_id in found:
            continue

        hours = cells[2].get_text(strip=True)
        symbol = cells[3].get_text(strip=True)
        season_finished = any(marker in hours for marker in SEASON_FINISHED_MARKERS)
        is_open = symbol == OPEN_SYMBOL and not season_finished
        if symbol not in (OPEN_SYMBOL, CLOSED_SYMBOL):
            logger.debug(f"Unknown status symbol {symbol!r} for {info.name}; treating as closed")

        found[info.lift_id] = LiftEntry(
            lift_id=info.lift_id,
            name=info.name,
            status=LiftState.OPEN if is_open else LiftState.CLOSED,
            scraped_at=now,
            hours=hours or None,
            priority=info.priority,
        )

    return _build_payload(found, off_season, now, "table")


def normalize_lift_icons(raw: dict, subject: Subject, now: datetime) -> LiftStatusPayload:
    """Parse the lift icons (``*_on.gif`` is open, anything else closed)."""
    html = raw["html"]
    off_season = is_off_season_page(html)
    soup = BeautifulSoup(html, "html.parser")

    found: dict[int, LiftEntry] = {}
    for img in soup.find_all("img", src=True):
        src = img["src"]
        if "/lift/" not in src:
            continue
        info = match_lift_icon(src)
        if info is None or info.lift_id in found:
            continue
        found[info.lift_id] = LiftEntry(
            lift_id=info.lift_id,
            name=info.name,
            status=LiftState.OPEN if "_on.gif" in src else LiftState.CLOSED,
            scraped_at=now,
            priority=info.priority,
        )

    return _build_payload(found, off_season, now, "icons")
