from __future__ import annotations

from unittest.mock import Mock, patch

from livestock_import.models.processing_result import Progress
from livestock_import.services.progress import (
    FileProgressIndicator,
    UploadProgressBar,
    is_tty_enabled,
)


def test_is_tty_enabled_returns_stdout_isatty():
    """Test that is_tty_enabled returns sys.stdout.isatty()."""
    with patch('sys.stdout.isatty', return_value=True):
        assert is_tty_enabled() is True

    with patch('sys.stdout.isatty', return_value=False):
        assert is_tty_enabled() is False


class TestUploadProgressBar:
    """Test cases for UploadProgressBar."""

    def test_bar_created_lazily_with_first_total(self):
        """No tqdm instance exists until the first Progress arrives."""
        with patch('livestock_import.services.progress.is_tty_enabled', return_value=True), \
             patch('livestock_import.services.progress.tqdm') as mock_tqdm:

            bar = UploadProgressBar(description="Uploading offtakes")
            mock_tqdm.assert_not_called()

            bar.update(Progress(0, 5))

            mock_tqdm.assert_called_once_with(
                total=5,
                desc="Uploading offtakes",
                unit="rec",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )

    def test_update_sets_position_from_progress(self):
        """The bar mirrors Progress.current instead of incrementing."""
        mock_pbar = Mock()
        mock_pbar.total = 5
        with patch('livestock_import.services.progress.is_tty_enabled', return_value=True), \
             patch('livestock_import.services.progress.tqdm', return_value=mock_pbar):

            bar = UploadProgressBar()
            bar.update(Progress(0, 5))
            bar.update(Progress(2, 5))
            bar.update(Progress(5, 5))

            assert mock_pbar.n == 5
            assert mock_pbar.refresh.call_count == 3
            assert (bar.current, bar.total) == (5, 5)

    def test_tty_disabled_tracks_values_without_drawing(self):
        """Non-TTY runs keep the counters but never create a bar."""
        with patch('livestock_import.services.progress.is_tty_enabled', return_value=False), \
             patch('livestock_import.services.progress.tqdm') as mock_tqdm:

            bar = UploadProgressBar()
            bar.update(Progress(3, 4))

            assert bar.pbar is None
            assert (bar.current, bar.total) == (3, 4)
            mock_tqdm.assert_not_called()

    def test_context_exit_resets_to_zero_and_closes(self):
        """Leaving the context returns the tracker to 0/0."""
        mock_pbar = Mock()
        mock_pbar.total = 2
        with patch('livestock_import.services.progress.is_tty_enabled', return_value=True), \
             patch('livestock_import.services.progress.tqdm', return_value=mock_pbar):

            with UploadProgressBar() as bar:
                bar.update(Progress(2, 2))

            assert (bar.current, bar.total) == (0, 0)
            mock_pbar.reset.assert_called_once_with(total=0)
            mock_pbar.close.assert_called_once()
            assert bar.pbar is None

    def test_context_exit_resets_on_failure(self):
        """An exception inside the context still resets the tracker."""
        with patch('livestock_import.services.progress.is_tty_enabled', return_value=False):
            bar = UploadProgressBar()
            try:
                with bar:
                    bar.update(Progress(1, 3))
                    raise RuntimeError("write failed")
            except RuntimeError:
                pass
            assert (bar.current, bar.total) == (0, 0)


class TestFileProgressIndicator:
    """Test cases for FileProgressIndicator."""

    def test_prints_status_when_tty(self, capsys):
        with patch('livestock_import.services.progress.is_tty_enabled', return_value=True):
            indicator = FileProgressIndicator(2)
            indicator.start_file("a.csv")
            indicator.finish_file(success=True, records=3)
            indicator.start_file("b.csv")
            indicator.finish_file(success=False)

        out = capsys.readouterr().out
        assert "File 1/2: a.csv - 3 records ok" in out
        assert "File 2/2: b.csv failed" in out
        assert indicator.current_file == 2

    def test_silent_when_not_tty(self, capsys):
        with patch('livestock_import.services.progress.is_tty_enabled', return_value=False):
            indicator = FileProgressIndicator(1)
            indicator.start_file("a.csv")
            indicator.finish_file()

        assert capsys.readouterr().out == ""
        assert indicator.current_file == 1
