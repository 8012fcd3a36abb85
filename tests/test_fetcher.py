from unittest.mock import MagicMock

import pytest
import requests

from councilwatch.errors import FetchTimeoutError, NotFoundError, UnreachableError
from councilwatch.fetcher import FetchPolicy, SourceFetcher
from councilwatch.sources.cvrd import CVRD_POLICY


def _response(status=200, text="<html><body>ok</body></html>", content_type="text/html", content=b""):
    response = MagicMock()
    response.status_code = status
    response.headers = {"Content-Type": content_type}
    response.text = text
    response.content = content
    return response


def _fetcher(sleeps, renderer=None):
    return SourceFetcher(
        requests.Session(),
        max_retries=2,
        backoff_seconds=2.0,
        sleep=sleeps.append,
        browser_renderer=renderer or MagicMock(return_value="<html>rendered</html>"),
    )


def test_retry_then_success_uses_linear_backoff(mocker):
    """
    Test: Two connection failures, then a good answer.
    We should wait 2s, then 4s, and return the body of the third attempt.
    """
    mock_get = mocker.patch("requests.Session.get", side_effect=[
        requests.exceptions.ConnectionError("reset"),
        requests.exceptions.ConnectionError("reset"),
        _response(text="third time lucky"),
    ])
    sleeps = []

    result = _fetcher(sleeps).fetch("https://www.comox.ca/councilmeetings")

    assert result.text == "third time lucky"
    assert mock_get.call_count == 3
    assert sleeps == [2.0, 4.0]


def test_server_errors_exhaust_retries(mocker):
    mock_get = mocker.patch("requests.Session.get", return_value=_response(status=503))
    sleeps = []

    with pytest.raises(UnreachableError) as excinfo:
        _fetcher(sleeps).fetch("https://www.comox.ca/councilmeetings")

    assert mock_get.call_count == 3
    assert excinfo.value.status_code == 503
    assert excinfo.value.attempts == 3


def test_not_found_is_terminal(mocker):
    """
    Test: A 404 is reported at once. Retrying a missing document is pointless.
    """
    mock_get = mocker.patch("requests.Session.get", return_value=_response(status=404))
    sleeps = []

    with pytest.raises(NotFoundError):
        _fetcher(sleeps).fetch("https://www.comox.ca/missing.pdf", binary=True)

    assert mock_get.call_count == 1
    assert sleeps == []


def test_timeouts_surface_as_fetch_timeout(mocker):
    mocker.patch("requests.Session.get", side_effect=requests.exceptions.ReadTimeout("slow"))
    sleeps = []

    with pytest.raises(FetchTimeoutError) as excinfo:
        _fetcher(sleeps).fetch("https://cumberland.ca/meetings/")

    assert excinfo.value.url == "https://cumberland.ca/meetings/"
    assert len(sleeps) == 2


def test_retries_are_counted_and_errors_chained(mocker):
    """
    Test: A timeout, then a 502, then success. Each retry is counted once and
    the final error of an exhausted run keeps the transport error as its cause.
    """
    retry_counter = mocker.patch("councilwatch.fetcher.record_fetch_retry")
    mocker.patch("requests.Session.get", side_effect=[
        requests.exceptions.ReadTimeout("slow"),
        _response(status=502),
        _response(text="finally"),
    ])
    sleeps = []

    assert _fetcher(sleeps).fetch("https://www.comox.ca/councilmeetings").text == "finally"
    assert sleeps == [2.0, 4.0]
    assert retry_counter.call_count == 2

    mocker.patch("requests.Session.get", side_effect=requests.exceptions.ConnectionError("reset"))
    with pytest.raises(UnreachableError) as excinfo:
        _fetcher([]).fetch("https://www.comox.ca/councilmeetings")
    assert isinstance(excinfo.value.__cause__, requests.exceptions.ConnectionError)


def test_pdf_responses_keep_bytes(mocker):
    mocker.patch("requests.Session.get", return_value=_response(content_type="application/pdf", content=b"%PDF-1.7"))

    result = _fetcher([]).fetch("https://www.comox.ca/agenda.pdf")

    assert result.is_pdf
    assert result.content == b"%PDF-1.7"


def test_certificate_checks_relaxed_only_for_the_listed_host(mocker):
    """
    Test: The CVRD portal has a broken certificate. Only requests to that
    host may skip verification; the session itself stays strict.
    """
    mock_get = mocker.patch("requests.Session.get", return_value=_response())
    fetcher = _fetcher([])

    fetcher.fetch_document("https://cvrdagendaminutes.comoxvalleyrd.ca/Meeting.aspx?Id=1", CVRD_POLICY)
    fetcher.fetch_document("https://www.comoxvalleyrd.ca/minutes-agendas", CVRD_POLICY)

    first, second = mock_get.call_args_list
    assert first.kwargs["verify"] is False
    assert second.kwargs["verify"] is True
    assert fetcher.session.verify is True


def test_policy_adds_query_params_and_headers(mocker):
    mock_get = mocker.patch("requests.Session.get", return_value=_response())

    _fetcher([]).fetch_document("https://cvrdagendaminutes.comoxvalleyrd.ca/Meeting.aspx?Id=7", CVRD_POLICY)

    url = mock_get.call_args.args[0]
    assert "Id=7" in url
    assert "PrinterVersion=1" in url
    assert "Mozilla" in mock_get.call_args.kwargs["headers"]["User-Agent"]


def test_browser_not_used_when_plain_fetch_succeeds(mocker):
    mocker.patch("requests.Session.get", return_value=_response(text="<html>agenda</html>"))
    renderer = MagicMock(return_value="<html>rendered</html>")

    result = _fetcher([], renderer).fetch_document("https://www.comoxvalleyrd.ca/x", CVRD_POLICY)

    assert result.text == "<html>agenda</html>"
    assert not result.via_browser
    renderer.assert_not_called()


def test_browser_fallback_after_plain_failure(mocker):
    """
    Test: When every plain attempt fails, the policy's headless browser takes over.
    """
    mocker.patch("requests.Session.get", return_value=_response(status=403))
    renderer = MagicMock(return_value="<html>rendered agenda</html>")
    url = "https://cvrdagendaminutes.comoxvalleyrd.ca/Meeting.aspx?Id=9"

    result = _fetcher([], renderer).fetch_document(url, CVRD_POLICY)

    assert result.via_browser
    assert result.text == "<html>rendered agenda</html>"
    renderer.assert_called_once()
    assert renderer.call_args.kwargs["ignore_https_errors"] is True


def test_browser_fallback_on_empty_body(mocker):
    mocker.patch("requests.Session.get", return_value=_response(text="   "))
    renderer = MagicMock(return_value="<html>rendered</html>")

    result = _fetcher([], renderer).fetch_document("https://www.comoxvalleyrd.ca/x", CVRD_POLICY)

    assert result.via_browser
    assert renderer.call_args.kwargs["ignore_https_errors"] is False


def test_no_browser_for_not_found_or_plain_policy(mocker):
    renderer = MagicMock(return_value="<html>rendered</html>")

    mocker.patch("requests.Session.get", return_value=_response(status=404))
    with pytest.raises(NotFoundError):
        _fetcher([], renderer).fetch_document("https://www.comoxvalleyrd.ca/gone", CVRD_POLICY)

    mocker.patch("requests.Session.get", return_value=_response(status=500))
    with pytest.raises(UnreachableError):
        _fetcher([], renderer).fetch_document("https://www.comox.ca/x", FetchPolicy())

    renderer.assert_not_called()


def test_pause_skips_zero_delay():
    sleeps = []
    fetcher = _fetcher(sleeps)

    fetcher.pause(0)
    fetcher.pause(1.5)

    assert sleeps == [1.5]
