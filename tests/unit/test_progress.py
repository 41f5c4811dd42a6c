from __future__ import annotations

from unittest.mock import Mock, patch

from admission_import.services.progress import ProgressTracker, is_tty_enabled


def test_is_tty_enabled_returns_stdout_isatty():
    with patch('sys.stdout.isatty', return_value=True):
        assert is_tty_enabled() is True

    with patch('sys.stdout.isatty', return_value=False):
        assert is_tty_enabled() is False


class TestProgressTracker:
    """Test cases for ProgressTracker class."""

    def test_init_with_tty_enabled(self):
        with patch('admission_import.services.progress.is_tty_enabled', return_value=True), \
             patch('admission_import.services.progress.tqdm') as mock_tqdm:

            tracker = ProgressTracker(5, description="Test rows")

            assert tracker.total_rows == 5
            assert tracker.enabled is True
            mock_tqdm.assert_called_once_with(
                total=5,
                desc="Test rows",
                unit="row",
                leave=True,
                ncols=80,
                ascii=True,
            )

    def test_init_with_tty_disabled(self):
        with patch('admission_import.services.progress.is_tty_enabled', return_value=False):
            tracker = ProgressTracker(5)

            assert tracker.description == "Committing rows"
            assert tracker.enabled is False
            assert tracker.pbar is None

    def test_finish_row_updates_bar(self):
        mock_pbar = Mock()
        with patch('admission_import.services.progress.is_tty_enabled', return_value=True), \
             patch('admission_import.services.progress.tqdm', return_value=mock_pbar):

            tracker = ProgressTracker(3)
            tracker.finish_row(2, True)
            tracker.finish_row(3, False)

            assert (tracker.completed, tracker.succeeded, tracker.failed) == (2, 1, 1)
            assert mock_pbar.update.call_count == 2
            mock_pbar.set_postfix.assert_called_with(row=3, ok=1, failed=1)

    def test_finish_row_with_tty_disabled(self):
        with patch('admission_import.services.progress.is_tty_enabled', return_value=False):
            tracker = ProgressTracker(2)
            tracker.finish_row(2)
            tracker.finish_row(3)
            assert tracker.succeeded == 2

    def test_context_manager_closes_bar(self):
        mock_pbar = Mock()
        with patch('admission_import.services.progress.is_tty_enabled', return_value=True), \
             patch('admission_import.services.progress.tqdm', return_value=mock_pbar):

            with ProgressTracker(1) as tracker:
                tracker.finish_row(2)

            mock_pbar.close.assert_called_once()
            assert tracker.pbar is None

    def test_close_twice_is_safe(self):
        mock_pbar = Mock()
        with patch('admission_import.services.progress.is_tty_enabled', return_value=True), \
             patch('admission_import.services.progress.tqdm', return_value=mock_pbar):

            tracker = ProgressTracker(1)
            tracker.close()
            tracker.close()
            mock_pbar.close.assert_called_once()
