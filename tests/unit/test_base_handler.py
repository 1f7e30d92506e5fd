"""Tests for base handler functionality."""

from __future__ import annotations

from unittest.mock import Mock, patch

import kopf
import pytest

from vaultsecure_operator.constants import FINALIZER
from vaultsecure_operator.handlers.base import BaseHandler
from vaultsecure_operator.lifecycle.errors import ConflictingCredentialExists, ReadFailed
from vaultsecure_operator.utils.conditions import set_creation_failed_condition
from vaultsecure_operator.utils.context import get_correlation_id


class TestBaseHandler:
    """Test cases for BaseHandler class."""

    def test_init(self):
        """Test handler initialization."""
        handler = BaseHandler(kind="TestKind")
        assert handler.kind == "TestKind"
        assert handler.logger is not None

    def test_ensure_finalizer_adds_when_missing(self):
        """Test that finalizer is added when not present."""
        handler = BaseHandler(kind="TestKind")
        meta = {"finalizers": []}
        patch = kopf.Patch()

        handler.ensure_finalizer(meta, patch)

        assert FINALIZER in patch.metadata["finalizers"]
        assert meta["finalizers"] == []

    def test_ensure_finalizer_no_duplicate(self):
        """Test that no patch is made when the finalizer is present."""
        handler = BaseHandler(kind="TestKind")
        meta = {"finalizers": [FINALIZER, "other-finalizer"]}
        patch = kopf.Patch()

        handler.ensure_finalizer(meta, patch)

        assert "finalizers" not in patch.metadata

    def test_ensure_finalizer_creates_list_when_absent(self):
        """Test that finalizers list is created when absent."""
        handler = BaseHandler(kind="TestKind")
        patch = kopf.Patch()

        handler.ensure_finalizer({}, patch)

        assert patch.metadata["finalizers"] == [FINALIZER]

    def test_remove_finalizer(self):
        """Test that finalizer is removed."""
        handler = BaseHandler(kind="TestKind")
        meta = {"finalizers": [FINALIZER, "other-finalizer"]}
        patch = kopf.Patch()

        handler.remove_finalizer(meta, patch)

        assert patch.metadata["finalizers"] == ["other-finalizer"]

    def test_remove_finalizer_sets_none_when_empty(self):
        """Test that finalizers is set to None when last finalizer is removed."""
        handler = BaseHandler(kind="TestKind")
        patch = kopf.Patch()

        handler.remove_finalizer({"finalizers": [FINALIZER]}, patch)

        assert patch.metadata["finalizers"] is None

    def test_remove_finalizer_no_error_when_absent(self):
        """Test that removing absent finalizer doesn't error."""
        handler = BaseHandler(kind="TestKind")
        patch = kopf.Patch()

        handler.remove_finalizer({"finalizers": ["other-finalizer"]}, patch)

        assert "finalizers" not in patch.metadata


class TestReconcileWithMetrics:
    """Test cases for reconcile_with_metrics."""

    @patch("vaultsecure_operator.handlers.base.emit_reconcile_started")
    @patch("vaultsecure_operator.handlers.base.metrics")
    def test_success(self, mock_metrics, mock_emit_started):
        """Test successful reconciliation with metrics."""
        handler = BaseHandler(kind="TestKind")
        meta = {"name": "test-resource", "namespace": "default", "uid": "uid-1"}
        reconcile_fn = Mock(return_value="result")

        assert handler.reconcile_with_metrics(meta, reconcile_fn) == "result"

        reconcile_fn.assert_called_once()
        mock_emit_started.assert_called_once_with(meta)
        mock_metrics.reconcile_total.labels.assert_any_call(kind="TestKind", result="started")
        mock_metrics.reconcile_total.labels.assert_any_call(kind="TestKind", result="success")
        assert mock_metrics.reconcile_duration_seconds.labels.called

    @patch("vaultsecure_operator.handlers.base.emit_reconcile_started")
    @patch("vaultsecure_operator.handlers.base.metrics")
    def test_correlation_id_is_resource_uid(self, mock_metrics, mock_emit_started):
        """Test that the resource uid is the correlation id while reconciling."""
        handler = BaseHandler(kind="TestKind")
        seen = []

        handler.reconcile_with_metrics({"uid": "uid-1"}, lambda: seen.append(get_correlation_id()))

        assert seen == ["uid-1"]
        assert get_correlation_id() is None

    @patch("vaultsecure_operator.handlers.base.emit_reconcile_failed")
    @patch("vaultsecure_operator.handlers.base.emit_reconcile_started")
    @patch("vaultsecure_operator.handlers.base.metrics")
    @patch("vaultsecure_operator.handlers.base.sanitize_exception")
    def test_unexpected_failure(self, mock_sanitize, mock_metrics, mock_emit_started, mock_emit_failed):
        """Test failed reconciliation with metrics and error handling."""
        handler = BaseHandler(kind="TestKind")
        meta = {"name": "test-resource", "namespace": "default"}
        test_error = ValueError("Test error")
        mock_sanitize.return_value = "Sanitized error"

        def failing_fn():
            raise test_error

        with pytest.raises(ValueError):
            handler.reconcile_with_metrics(meta, failing_fn)

        assert mock_sanitize.call_count == 2
        mock_sanitize.assert_any_call(test_error)
        mock_emit_failed.assert_called_once_with(meta, "Reconciliation failed: Sanitized error")
        mock_metrics.error_total.labels.assert_called_with(kind="TestKind", error_type="ValueError")
        mock_metrics.reconcile_total.labels.assert_any_call(kind="TestKind", result="error")

    @patch("vaultsecure_operator.handlers.base.emit_reconcile_failed")
    @patch("vaultsecure_operator.handlers.base.emit_reconcile_started")
    @patch("vaultsecure_operator.handlers.base.metrics")
    def test_kopf_error_passes_through(self, mock_metrics, mock_emit_started, mock_emit_failed):
        """Test that already handled kopf errors are re-raised untouched."""
        handler = BaseHandler(kind="TestKind")

        def failing_fn():
            raise kopf.TemporaryError("later")

        with pytest.raises(kopf.TemporaryError):
            handler.reconcile_with_metrics({"name": "r"}, failing_fn)

        mock_emit_failed.assert_not_called()
        mock_metrics.reconcile_total.labels.assert_any_call(kind="TestKind", result="failed")


class TestHandleLifecycleError:
    """Test cases for handle_lifecycle_error."""

    @patch("vaultsecure_operator.handlers.base.emit_reconcile_failed")
    @patch("vaultsecure_operator.handlers.base.metrics")
    def test_retryable_becomes_temporary(self, mock_metrics, mock_emit_failed):
        """Test that transient failures are retried by kopf."""
        handler = BaseHandler(kind="TestKind")
        patch = kopf.Patch()
        error = ReadFailed("vault sealed", "aws1:alice", "refresh engine key")

        with pytest.raises(kopf.TemporaryError):
            handler.handle_lifecycle_error({"generation": 2}, {}, patch, error)

        assert patch.status["observedGeneration"] == 2
        mock_metrics.error_total.labels.assert_called_with(kind="TestKind", error_type="ReadFailed")
        assert "aws1:alice" in mock_emit_failed.call_args[0][1]

    @patch("vaultsecure_operator.handlers.base.emit_reconcile_failed")
    @patch("vaultsecure_operator.handlers.base.metrics")
    def test_non_retryable_becomes_permanent(self, mock_metrics, mock_emit_failed):
        """Test that violated assumptions stop kopf from retrying."""
        handler = BaseHandler(kind="TestKind")
        patch = kopf.Patch()
        error = ConflictingCredentialExists("principal has a key", "aws1:alice", "check existing keys")

        with pytest.raises(kopf.PermanentError):
            handler.handle_lifecycle_error(
                {"generation": 1},
                {"conditions": []},
                patch,
                error,
                condition_fn=set_creation_failed_condition,
                status_data={"phase": "Absent"},
            )

        assert patch.status["phase"] == "Absent"
        assert patch.status["conditions"][0]["type"] == "CreationFailed"
        assert "principal has a key" in patch.status["conditions"][0]["message"]


class TestUpdateResourceStatus:
    """Test cases for update_resource_status."""

    @patch("vaultsecure_operator.handlers.base.metrics")
    def test_update_resource_status_ready(self, mock_metrics):
        """Test updating resource status to ready."""
        handler = BaseHandler(kind="TestKind")
        patch = kopf.Patch()

        handler.update_resource_status(patch, {"generation": 5}, ready=True, status_data={"phase": "Owned"})

        assert patch.status["observedGeneration"] == 5
        assert patch.status["phase"] == "Owned"
        mock_metrics.resource_status_total.labels.assert_called_with(kind="TestKind", status="ready")

    @patch("vaultsecure_operator.handlers.base.metrics")
    def test_update_resource_status_not_ready(self, mock_metrics):
        """Test updating resource status to not ready."""
        handler = BaseHandler(kind="TestKind")
        patch = kopf.Patch()

        handler.update_resource_status(patch, {"generation": 3}, ready=False, status_data={"phase": "Drifted"})

        assert patch.status["phase"] == "Drifted"
        mock_metrics.resource_status_total.labels.assert_called_with(kind="TestKind", status="not_ready")

    @patch("vaultsecure_operator.handlers.base.metrics")
    def test_update_resource_status_minimal(self, mock_metrics):
        """Test updating resource status with minimal data."""
        handler = BaseHandler(kind="TestKind")
        patch = kopf.Patch()

        handler.update_resource_status(patch, {"name": "test-resource"}, ready=True)

        assert patch.status["observedGeneration"] == 0
