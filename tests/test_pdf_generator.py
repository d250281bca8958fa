"""Tests for page counting and the HTTP renderer client's error classification."""

from unittest.mock import MagicMock

import pytest
import requests

from podpdf.exceptions import PageLimitExceededError, RenderError
from podpdf.services.pdf_generator import HttpPdfGenerator, count_pages
from tests.conftest import make_pdf


class TestCountPages:

    def test_counts_single_branch(self):
        assert count_pages(make_pdf(3)) == 3

    def test_counts_whole_tree_not_last_branch(self):
        pdf = make_pdf(100, 50)
        assert count_pages(pdf) == 150

    def test_unreadable_bytes_raise_render_error(self):
        with pytest.raises(RenderError, match="unreadable PDF") as exc_info:
            count_pages(b"this is not a pdf")
        assert exc_info.value.retryable is True


def _response(status_code=200, content=None, headers=None, json_body=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.content = make_pdf(3) if content is None else content
    resp.headers = headers or {}
    if json_body is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = json_body
    return resp


def _generator(response=None, error=None, tolerance=0) -> HttpPdfGenerator:
    session = MagicMock()
    if error is not None:
        session.post.side_effect = error
    else:
        session.post.return_value = response
    return HttpPdfGenerator("http://renderer:3000/", page_limit_tolerance=tolerance, session=session)


class TestHttpPdfGenerator:

    def test_success_uses_page_count_header(self):
        gen = _generator(_response(headers={"X-Page-Count": "4"}))
        result = gen.generate("<h1>x</h1>", "html", {}, 100)
        assert result.pages == 4
        assert result.truncated is False
        assert result.pdf.startswith(b"%PDF")

    def test_success_counts_pages_without_header(self):
        result = _generator(_response()).generate("# x", "markdown", {}, 100)
        assert result.pages == 3

    def test_request_body(self):
        gen = _generator(_response())
        gen.generate("<p/>", "html", {"format": "A4"}, 50)
        call = gen._session.post.call_args
        assert call.args[0] == "http://renderer:3000/render"
        assert call.kwargs["json"] == {
            "input_type": "html",
            "content": "<p/>",
            "options": {"format": "A4"},
            "max_pages": 50,
        }

    def test_structured_422_is_page_limit(self):
        body = {"error": "PAGE_LIMIT_EXCEEDED", "page_count": 150, "max_pages": 100}
        gen = _generator(_response(422, json_body=body))
        with pytest.raises(PageLimitExceededError) as exc_info:
            gen.generate("x", "html", {}, 100)
        assert exc_info.value.page_count == 150
        assert exc_info.value.max_pages == 100
        assert exc_info.value.retryable is False

    def test_other_422_is_render_error(self):
        gen = _generator(_response(422, json_body={"error": "INVALID_HTML"}))
        with pytest.raises(RenderError):
            gen.generate("x", "html", {}, 100)

    def test_server_error_is_retryable(self):
        with pytest.raises(RenderError) as exc_info:
            _generator(_response(500)).generate("x", "html", {}, 100)
        assert exc_info.value.retryable is True

    def test_timeout_is_render_error(self):
        gen = _generator(error=requests.exceptions.Timeout())
        with pytest.raises(RenderError, match="timed out"):
            gen.generate("x", "html", {}, 100)

    def test_connection_error_is_render_error(self):
        gen = _generator(error=requests.exceptions.ConnectionError("refused"))
        with pytest.raises(RenderError, match="unavailable"):
            gen.generate("x", "html", {}, 100)

    def test_empty_body_is_render_error(self):
        with pytest.raises(RenderError):
            _generator(_response(content=b"")).generate("x", "html", {}, 100)

    def test_local_page_limit_with_tolerance(self):
        ok = _generator(_response(headers={"X-Page-Count": "101"}), tolerance=1)
        assert ok.generate("x", "html", {}, 100).pages == 101

        over = _generator(_response(headers={"X-Page-Count": "102"}), tolerance=1)
        with pytest.raises(PageLimitExceededError, match=r"\(102\).*\(100\)"):
            over.generate("x", "html", {}, 100)

    def test_nested_page_tree_over_limit_without_header(self):
        gen = _generator(_response(content=make_pdf(100, 50)), tolerance=1)
        with pytest.raises(PageLimitExceededError) as exc_info:
            gen.generate("x", "html", {}, 100)
        assert exc_info.value.page_count == 150

    def test_unreadable_body_without_header_is_render_error(self):
        gen = _generator(_response(content=b"<html>not a pdf</html>"))
        with pytest.raises(RenderError):
            gen.generate("x", "html", {}, 100)
