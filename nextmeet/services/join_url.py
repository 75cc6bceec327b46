# nextmeet/services/join_url.py
"""Recognise video-meeting join links in provider event data."""

from __future__ import annotations

import html
import re
from typing import Iterable, Optional
from urllib.parse import urlsplit

MEETING_HOSTS = (
    "zoom.us",
    "meet.google.com",
    "teams.microsoft.com",
    "teams.live.com",
    "webex.com",
    "gotomeeting.com",
    "gotomeet.me",
    "chime.aws",
    "bluejeans.com",
    "whereby.com",
)

# Free-text notes are cut to this many characters before scanning.
MAX_SCAN_LENGTH = 2000

_URL_PATTERN = re.compile(r"https?://[^\s\"'<>\[\]{}|\\^`]+", re.IGNORECASE)
_TRAILING_PUNCTUATION = ".,;:!?)"


def is_meeting_url(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if parts.scheme not in ("http", "https"):
        return False
    host = (parts.hostname or "").lower()
    return any(host == known or host.endswith("." + known) for known in MEETING_HOSTS)


def find_meeting_url(text: Optional[str], limit: int = MAX_SCAN_LENGTH) -> Optional[str]:
    """
    Return the first URL in `text` whose host is a known meeting platform.
    """
    if not text:
        return None
    candidate_text = html.unescape(text[:limit])
    for match in _URL_PATTERN.finditer(candidate_text):
        url = match.group(0).rstrip(_TRAILING_PUNCTUATION)
        if is_meeting_url(url):
            return url
    return None


def extract_join_url(
    *,
    online_meeting_urls: Iterable[Optional[str]] = (),
    url: Optional[str] = None,
    location: Optional[str] = None,
    notes: Optional[str] = None,
) -> Optional[str]:
    """
    Pick the join link for an event.

    Priority: structured online-meeting fields exposed by the provider API,
    then the explicit URL field, then the location, then the notes (bounded).
    Free-text sources only yield URLs on a known meeting host.
    """
    for candidate in online_meeting_urls:
        if candidate and candidate.lower().startswith(("http://", "https://")):
            return candidate

    for text in (url, location, notes):
        found = find_meeting_url(text)
        if found:
            return found
    return None
