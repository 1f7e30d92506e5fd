"""Tests for health check endpoints."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from vaultsecure_operator.health import create_combined_wsgi_app, start_metrics_server


def _environ(path: str) -> dict:
    return {
        "REQUEST_METHOD": "GET",
        "PATH_INFO": path,
        "SCRIPT_NAME": "",
        "SERVER_NAME": "localhost",
        "SERVER_PORT": "8080",
        "wsgi.url_scheme": "http",
    }


class TestCombinedWsgiApp:
    """Test cases for combined WSGI application."""

    def test_healthz(self):
        """Test combined app handles /healthz."""
        app = create_combined_wsgi_app()
        start_response = MagicMock()

        body = b"".join(app(_environ("/healthz"), start_response))

        assert b'"status":"ok"' in body
        assert "200" in start_response.call_args[0][0]

    def test_readyz_without_check(self):
        """Test that /readyz is ready when no check is configured."""
        app = create_combined_wsgi_app()
        start_response = MagicMock()

        body = b"".join(app(_environ("/readyz"), start_response))

        assert b'"status":"ready"' in body

    def test_readyz_not_ready(self):
        """Test that a failing readiness check returns 503."""
        app = create_combined_wsgi_app(readiness_check=lambda: False)
        start_response = MagicMock()

        body = b"".join(app(_environ("/readyz"), start_response))

        assert b'"status":"not ready"' in body
        assert "503" in start_response.call_args[0][0]

    def test_readyz_ready(self):
        """Test that a passing readiness check returns 200."""
        check = MagicMock(return_value=True)
        app = create_combined_wsgi_app(readiness_check=check)
        start_response = MagicMock()

        app(_environ("/readyz"), start_response)

        check.assert_called_once()
        assert "200" in start_response.call_args[0][0]

    def test_content_type_is_json(self):
        """Test that content type is application/json."""
        app = create_combined_wsgi_app()
        start_response = MagicMock()

        app(_environ("/healthz"), start_response)

        headers = start_response.call_args[0][1]
        content_type = [h for h in headers if h[0].lower() == "content-type"]
        assert "application/json" in content_type[0][1]

    @patch("vaultsecure_operator.health.make_wsgi_app")
    def test_delegates_to_metrics(self, mock_make_wsgi):
        """Test combined app delegates /metrics to prometheus."""
        mock_metrics_app = MagicMock(return_value=[b"metrics data"])
        mock_make_wsgi.return_value = mock_metrics_app
        app = create_combined_wsgi_app()

        result = app(_environ("/metrics"), MagicMock())

        assert mock_metrics_app.called
        assert result == [b"metrics data"]


class TestStartMetricsServer:
    """Test cases for start_metrics_server."""

    @patch("vaultsecure_operator.health.make_server")
    @patch("vaultsecure_operator.health.threading.Thread")
    def test_starts_daemon_thread(self, mock_thread, mock_make_server):
        """Test that the server runs on a daemon thread."""
        server = start_metrics_server(8080)

        assert server is mock_make_server.return_value
        assert mock_make_server.call_args[0][1] == 8080
        assert mock_thread.call_args[1].get("daemon") is True
        mock_thread.return_value.start.assert_called_once()
