import datetime

import pytest

from councilwatch.errors import NotFoundError
from councilwatch.fetcher import FetchResult
from councilwatch.sources.comox import Comox, is_meeting_href
from councilwatch.sources.courtenay import CourtenayHighlights, meeting_date_from_url
from councilwatch.sources.cumberland import Cumberland, meeting_type_from_text
from councilwatch.sources.cvrd import CVRD_POLICY, CvrdBoard, parse_row_date
from councilwatch.sources.registry import SOURCES, get_adapter


class FakeFetcher:
    """
    Serves canned pages by URL. Anything not listed is a 404, which is how
    the adapters see a missing page in production too.
    """

    def __init__(self, pages=None, pdfs=None, documents=None):
        self.pages = pages or {}
        self.pdfs = pdfs or {}
        self.documents = documents or {}
        self.requested = []
        self.policies = []

    def pause(self, seconds):
        pass

    def fetch_text(self, url, **kwargs):
        self.requested.append(url)
        if url not in self.pages:
            raise NotFoundError(f"Not found: {url}", url=url, attempts=1, status_code=404)
        return self.pages[url]

    def fetch_bytes(self, url, **kwargs):
        self.requested.append(url)
        if url not in self.pdfs:
            raise NotFoundError(f"Not found: {url}", url=url, attempts=1, status_code=404)
        return self.pdfs[url]

    def fetch_document(self, url, policy):
        self.requested.append(url)
        self.policies.append(policy)
        if url not in self.documents:
            raise NotFoundError(f"Not found: {url}", url=url, attempts=1, status_code=404)
        return self.documents[url]


AGENDA_TEXT = """STAFF REPORT
SUBJECT: Housing Accelerator Fund Update
PURPOSE
To update Council on the progress of the Housing Accelerator Fund projects and the spending to date across all streams.
RECOMMENDATION
THAT Council receive the report for information.

Page 20-1
Dear Mayor and Council, I support the new housing.
Page 20-2
"""


# =============================================================================
# Courtenay
# =============================================================================

COURTENAY_NEWS = """
<html><body>
<a href="/news/courtenay-council-meeting-highlights-february-18-2026">Council Meeting Highlights – February 18, 2026</a>
<a href="/news/courtenay-council-meeting-highlights-february-18-2026">Council Meeting Highlights – February 18, 2026</a>
<a href="/news/courtenay-council-meeting-highlights-january-28-2026"></a>
<a href="/news/spring-cleanup">Spring cleanup</a>
</body></html>
"""

COURTENAY_ARTICLE = """
<html><body><article>
<h2>Zoning Amendment Bylaw No. 3100</h2>
<p>Council considered the rezoning of 1500 Ryan Road to allow a four-storey rental building.</p>
<p>Actions: Council gave third reading to the bylaw.</p>
</article></body></html>
"""

HIGHLIGHTS_URL = "https://www.courtenay.ca/news/courtenay-council-meeting-highlights-february-18-2026"


def test_courtenay_collects_highlights_articles():
    fetcher = FakeFetcher(pages={
        "https://www.courtenay.ca/news": COURTENAY_NEWS,
        HIGHLIGHTS_URL: COURTENAY_ARTICLE,
    })
    adapter = CourtenayHighlights(fetcher=fetcher)

    result = adapter.collect(limit=3)

    assert result.links == 1
    meeting = result.meetings[0]
    assert meeting.date == datetime.date(2026, 2, 18)
    assert meeting.highlights_url == HIGHLIGHTS_URL
    assert [i.title for i in meeting.items] == ["Zoning Amendment Bylaw No. 3100"]
    assert meeting.items[0].source_type == "highlights"
    assert meeting.items[0].decision == "Council gave third reading to the bylaw."


def test_courtenay_date_from_url():
    assert meeting_date_from_url(HIGHLIGHTS_URL) == datetime.date(2026, 2, 18)
    assert meeting_date_from_url("https://www.courtenay.ca/news/other") is None


# =============================================================================
# Comox
# =============================================================================

COMOX_LISTING = """
<html><body>
<a href="/government-bylaws/council/meetings/regular-council-meeting-february-4-2026">Regular Council Meeting</a>
<a href="/government-bylaws/council/meetings/regular-council-meeting-january-21-2026">Regular Council Meeting</a>
<a href="/government-bylaws/council/meetings/agenda.pdf">Agenda PDF</a>
<a href="/government-bylaws/council/meetings">All meetings</a>
</body></html>
"""

COMOX_MEETING_URL = "https://www.comox.ca/government-bylaws/council/meetings/regular-council-meeting-february-4-2026"

COMOX_MEETING = """
<html><body>
<h1>Regular Council Meeting - February 4, 2026</h1>
<a href="/files/2026-02-04-agenda.pdf">Agenda Package</a>
<a href="/files/2026-02-04-minutes.pdf">Minutes</a>
<a href="https://www.youtube.com/watch?v=abc123">Watch the meeting</a>
</body></html>
"""


def test_comox_falls_back_to_second_listing_and_parses_agenda(mocker):
    """
    Test: The first listing URL is gone (404). The second one lists meetings,
    and the agenda package yields items plus a correspondence sample.
    """
    mocker.patch("councilwatch.sources.base.extract_pdf_text", return_value=AGENDA_TEXT)
    fetcher = FakeFetcher(
        pages={
            "https://www.comox.ca/government-bylaws/council/meetings": COMOX_LISTING,
            COMOX_MEETING_URL: COMOX_MEETING,
        },
        pdfs={"https://www.comox.ca/files/2026-02-04-agenda.pdf": b"%PDF"},
    )
    adapter = Comox(fetcher=fetcher)

    result = adapter.collect(limit=1)

    assert result.links == 1
    meeting = result.meetings[0]
    assert meeting.date == datetime.date(2026, 2, 4)
    assert meeting.title == "Regular Council Meeting - February 4, 2026"
    assert meeting.agenda_url == "https://www.comox.ca/files/2026-02-04-agenda.pdf"
    assert meeting.minutes_url == "https://www.comox.ca/files/2026-02-04-minutes.pdf"
    assert meeting.video_url == "https://www.youtube.com/watch?v=abc123"
    assert [i.title for i in meeting.items] == ["Housing Accelerator Fund Update"]
    assert meeting.feedback.max_page == 2


def test_comox_delta_crawl_skips_older_meetings(mocker):
    mocker.patch("councilwatch.sources.base.extract_pdf_text", return_value=AGENDA_TEXT)
    fetcher = FakeFetcher(pages={"https://www.comox.ca/councilmeetings": COMOX_LISTING})
    adapter = Comox(fetcher=fetcher)
    adapter.scrape_meeting = mocker.MagicMock(return_value=None)

    result = adapter.collect(limit=5, last_date=datetime.date(2026, 2, 1))

    assert result.links == 1
    assert adapter.scrape_meeting.call_args.args[0].url == COMOX_MEETING_URL


def test_comox_meeting_href_filter():
    listing = "https://www.comox.ca/government-bylaws/council/meetings"
    assert is_meeting_href("/government-bylaws/council/meetings/regular-council-meeting-february-4-2026", listing)
    assert not is_meeting_href("/government-bylaws/council/meetings/agenda.pdf", listing)
    assert not is_meeting_href("/news/some-story", listing)


def test_missing_agenda_pdf_costs_only_that_meeting():
    fetcher = FakeFetcher(pages={
        "https://www.comox.ca/councilmeetings": COMOX_LISTING,
        COMOX_MEETING_URL: COMOX_MEETING,
    })
    adapter = Comox(fetcher=fetcher)

    result = adapter.collect(limit=5)

    # Both meetings fail (one page missing, one PDF missing) without raising.
    assert result.links == 2
    assert result.meetings == []


# =============================================================================
# Cumberland
# =============================================================================

CUMBERLAND_LISTING = """
<html><body>
<h2><a href="https://cumberland.ca/meetings/regular-council-meeting-january-26-2026/">Regular Council Meeting - January 26, 2026</a></h2>
<h3><a href="/meetings/committee-of-the-whole-february-2-2026/">Committee of the Whole - February 2, 2026</a></h3>
<h2><a href="/meetings/">Meetings</a></h2>
</body></html>
"""

CUMBERLAND_MEETING = """
<html><body>
<h1>Regular Council Meeting - January 26, 2026</h1>
<a href="/wp-content/uploads/2026/01/RC_Jan26_reduced.pdf">Download</a>
<a href="/wp-content/uploads/2026/01/other.pdf">Other</a>
</body></html>
"""

CUMBERLAND_AGENDA = """REPORT TO COUNCIL
SUBJECT: Dog Park Fencing Contract
Staff tendered the fencing work for the new off-leash area and received three bids, the lowest of which is within the approved capital budget.
RECOMMENDATION
THAT Council award the contract to the lowest bidder.
"""


def test_cumberland_collects_meetings_with_types(mocker):
    mocker.patch("councilwatch.sources.base.extract_pdf_text", return_value=CUMBERLAND_AGENDA)
    regular_url = "https://cumberland.ca/meetings/regular-council-meeting-january-26-2026/"
    fetcher = FakeFetcher(
        pages={"https://cumberland.ca/meetings/": CUMBERLAND_LISTING, regular_url: CUMBERLAND_MEETING},
        pdfs={"https://cumberland.ca/wp-content/uploads/2026/01/RC_Jan26_reduced.pdf": b"%PDF"},
    )
    adapter = Cumberland(fetcher=fetcher)

    links = adapter.discover(limit=5)
    assert [(l.date, l.meeting_type) for l in links] == [
        (datetime.date(2026, 1, 26), "regular"),
        (datetime.date(2026, 2, 2), "committee"),
    ]

    meeting = adapter.scrape_meeting(links[0])
    assert meeting.agenda_url.endswith("RC_Jan26_reduced.pdf")
    assert [i.title for i in meeting.items] == ["Dog Park Fencing Contract"]


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Committee of the Whole - February 2, 2026", "committee"),
        ("Special Council Meeting", "special"),
        ("Heritage Committee", "committee"),
        ("Regular Council Meeting", "regular"),
    ],
)
def test_cumberland_meeting_type(text, expected):
    assert meeting_type_from_text(text) == expected


# =============================================================================
# CVRD
# =============================================================================

CVRD_NEWS = """
<html><body>
<a href="/news/board-highlights-february-24-2026">Board Highlights – February 24, 2026</a>
<a href="/news/wildfire-season">Wildfire season starts</a>
</body></html>
"""

CVRD_NEWS_POST = """
<html><body><main>
<h2>Board approves regional parks budget</h2>
<p>The Board approved the 2026 regional parks budget, including trail upgrades at Seal Bay.</p>
</main></body></html>
"""

CVRD_PORTAL = """
<html><body><table>
<tr><th>Date</th><th>Committee</th><th>Agenda</th><th>Video</th></tr>
<tr>
  <td>February 24, 2026 - 1:00 PM</td>
  <td>Comox Valley Regional District Board</td>
  <td><a href="https://cvrdagendaminutes.comoxvalleyrd.ca/CVRDAgendas/Meeting.aspx?Id=101">Agenda</a></td>
  <td><a href="https://www.youtube.com/watch?v=board">Video</a></td>
</tr>
<tr>
  <td>February 24, 2026 - 9:00 AM</td>
  <td>Electoral Areas Services Committee</td>
  <td><a href="https://cvrdagendaminutes.comoxvalleyrd.ca/CVRDAgendas/Meeting.aspx?Id=102">Agenda</a></td>
  <td></td>
</tr>
</table></body></html>
"""

CVRD_AGENDA_HTML = """
<html><body><table>
<tr><td><b>1)</b></td><td colspan="3"><b>REGIONAL GROWTH STRATEGY AMENDMENT BYLAW NO. 512</b></td></tr>
<tr><td></td><td><blockquote>Report dated February 10, 2026 from the General Manager of Planning recommending amendments to the growth strategy.</blockquote></td></tr>
<tr><td></td><td><blockquote>THAT the Board give first and second reading to Bylaw No. 512.</blockquote></td></tr>
</table></body></html>
"""

PORTAL_AGENDA_URL = "https://cvrdagendaminutes.comoxvalleyrd.ca/CVRDAgendas/Meeting.aspx?Id=101"


def test_cvrd_prefers_news_highlights():
    fetcher = FakeFetcher(pages={
        "https://www.comoxvalleyrd.ca/news": CVRD_NEWS,
        "https://www.comoxvalleyrd.ca/news/board-highlights-february-24-2026": CVRD_NEWS_POST,
    })

    result = CvrdBoard(fetcher=fetcher).collect(limit=3)

    assert result.links == 1
    meeting = result.meetings[0]
    assert meeting.date == datetime.date(2026, 2, 24)
    assert [i.title for i in meeting.items] == ["Board approves regional parks budget"]
    assert "https://www.comoxvalleyrd.ca/minutes-agendas" not in fetcher.requested


def test_cvrd_falls_back_to_portal_board_meetings():
    """
    Test: No news page, so the portal is used. Only the Board row counts, and
    the agenda is fetched under the portal policy.
    """
    fetcher = FakeFetcher(
        pages={"https://www.comoxvalleyrd.ca/minutes-agendas": CVRD_PORTAL},
        documents={PORTAL_AGENDA_URL: FetchResult(
            url=PORTAL_AGENDA_URL, status_code=200, content_type="text/html", text=CVRD_AGENDA_HTML,
        )},
    )

    result = CvrdBoard(fetcher=fetcher).collect(limit=3)

    assert result.links == 1
    meeting = result.meetings[0]
    assert meeting.date == datetime.date(2026, 2, 24)
    assert meeting.title == "CVRD Board Meeting – February 24, 2026"
    assert meeting.video_url == "https://www.youtube.com/watch?v=board"
    assert [i.bylaw_number for i in meeting.items] == ["512"]
    assert fetcher.policies == [CVRD_POLICY]


def test_cvrd_undated_news_post_does_not_block_portal():
    """
    Test: A highlights post with no date in its link text has items but can
    never be stored, so the portal still supplies the Board meeting.
    """
    fetcher = FakeFetcher(
        pages={
            "https://www.comoxvalleyrd.ca/news": (
                '<html><body><a href="/news/board-meeting-highlights">Board meeting highlights</a></body></html>'
            ),
            "https://www.comoxvalleyrd.ca/news/board-meeting-highlights": CVRD_NEWS_POST,
            "https://www.comoxvalleyrd.ca/minutes-agendas": CVRD_PORTAL,
        },
        documents={PORTAL_AGENDA_URL: FetchResult(
            url=PORTAL_AGENDA_URL, status_code=200, content_type="text/html", text=CVRD_AGENDA_HTML,
        )},
    )

    result = CvrdBoard(fetcher=fetcher).collect(limit=3)

    assert "https://www.comoxvalleyrd.ca/minutes-agendas" in fetcher.requested
    assert [m.date for m in result.meetings] == [datetime.date(2026, 2, 24)]
    assert [i.bylaw_number for i in result.meetings[0].items] == ["512"]


def test_cvrd_pdf_agenda_uses_pdf_parser(mocker):
    mocker.patch("councilwatch.sources.cvrd.extract_pdf_text", return_value=(
        "STAFF REPORT\nSUBJECT: Transit Service Review\nPURPOSE\n"
        "To present the findings of the regional transit service review and the recommended route changes for 2027.\n"
    ))
    fetcher = FakeFetcher(
        pages={"https://www.comoxvalleyrd.ca/minutes-agendas": CVRD_PORTAL},
        documents={PORTAL_AGENDA_URL: FetchResult(
            url=PORTAL_AGENDA_URL, status_code=200, content_type="application/pdf", content=b"%PDF",
        )},
    )

    result = CvrdBoard(fetcher=fetcher).collect(limit=3)

    assert [i.title for i in result.meetings[0].items] == ["Transit Service Review"]


def test_cvrd_meeting_kept_when_documents_fail():
    fetcher = FakeFetcher(pages={"https://www.comoxvalleyrd.ca/minutes-agendas": CVRD_PORTAL})

    result = CvrdBoard(fetcher=fetcher).collect(limit=3)

    assert len(result.meetings) == 1
    assert result.meetings[0].items == []


def test_parse_row_date():
    assert parse_row_date("February 24, 2026 - 1:00 PM") == datetime.date(2026, 2, 24)
    assert parse_row_date("TBD") is None


# =============================================================================
# Registry
# =============================================================================

def test_registry_builds_adapters():
    fetcher = FakeFetcher()

    assert set(SOURCES) == {"courtenay", "comox", "cumberland", "cvrd"}
    assert isinstance(get_adapter("CVRD", fetcher=fetcher), CvrdBoard)
    with pytest.raises(ValueError):
        get_adapter("nanaimo")
