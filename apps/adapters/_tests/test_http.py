import json
import urllib.error
from unittest.mock import MagicMock, patch

from django.test import SimpleTestCase

from apps.adapters.exceptions import (
    PermanentProbeError,
    RateLimitedError,
    TransientProbeError,
)
from apps.adapters.http import fetch_json


def _mock_urlopen(response_body, status_code=200):
    mock_resp = MagicMock()
    mock_resp.read.return_value = response_body.encode("utf-8")
    mock_resp.getcode.return_value = status_code
    mock_resp.__enter__ = MagicMock(return_value=mock_resp)
    mock_resp.__exit__ = MagicMock(return_value=False)
    return mock_resp


def _http_error(code, headers=None):
    return urllib.error.HTTPError("http://example.com", code, "error", headers or {}, None)


class FetchJsonTests(SimpleTestCase):
    @patch("apps.adapters.http.urllib.request.urlopen")
    def test_decodes_json(self, mock_urlopen):
        mock_urlopen.return_value = _mock_urlopen(json.dumps([{"a": 1}]))

        self.assertEqual(fetch_json("http://example.com", headers={"X-Test": "1"}), [{"a": 1}])

        request = mock_urlopen.call_args[0][0]
        self.assertEqual(request.get_header("X-test"), "1")
        self.assertEqual(request.get_header("Accept"), "application/json")

    @patch("apps.adapters.http.urllib.request.urlopen")
    def test_rate_limited(self, mock_urlopen):
        mock_urlopen.side_effect = _http_error(429, {"Retry-After": "30"})

        with self.assertRaises(RateLimitedError) as ctx:
            fetch_json("http://example.com")
        self.assertEqual(ctx.exception.retry_after_seconds, 30.0)
        self.assertTrue(ctx.exception.retryable)

    @patch("apps.adapters.http.urllib.request.urlopen")
    def test_server_error_is_transient(self, mock_urlopen):
        mock_urlopen.side_effect = _http_error(503)

        with self.assertRaises(TransientProbeError) as ctx:
            fetch_json("http://example.com")
        self.assertEqual(ctx.exception.kind, "transient")

    @patch("apps.adapters.http.urllib.request.urlopen")
    def test_client_error_is_permanent(self, mock_urlopen):
        mock_urlopen.side_effect = _http_error(404)

        with self.assertRaises(PermanentProbeError):
            fetch_json("http://example.com")

    @patch("apps.adapters.http.urllib.request.urlopen")
    def test_connection_error_is_transient(self, mock_urlopen):
        mock_urlopen.side_effect = urllib.error.URLError("Connection refused")

        with self.assertRaises(TransientProbeError):
            fetch_json("http://example.com")

    @patch("apps.adapters.http.urllib.request.urlopen")
    def test_socket_timeout_is_transient(self, mock_urlopen):
        mock_urlopen.side_effect = TimeoutError("timed out")

        with self.assertRaises(TransientProbeError):
            fetch_json("http://example.com")

    @patch("apps.adapters.http.urllib.request.urlopen")
    def test_malformed_json_is_permanent(self, mock_urlopen):
        mock_urlopen.return_value = _mock_urlopen("<html>oops</html>")

        with self.assertRaises(PermanentProbeError):
            fetch_json("http://example.com")
