"""Progress reporting as numbers, frames or a text progress bar."""

from __future__ import annotations

import time
from collections.abc import Callable

from fwupkit.output import FrameType, ProgressMode, Reporter
from fwupkit.util import find_natural_units, units_to_string

_PROGRESS_BITS = 36
_MAX_EQUALS = 50


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class Progress:
    """Tracks work done against a total and reports it as a percentage.

    Reports never repeat or go backwards, and 100% is held back until
    report_complete() is called. The low value is reported at once.
    """

    def __init__(
        self,
        reporter: Reporter,
        low: int = 0,
        high: int = 100,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.reporter = reporter
        self.low = low
        self.range = high - low
        self.total_units = 0
        self.current_units = 0
        self.input_bytes = 0
        self.last_reported_percent = -1
        self.start_time: int | None = None
        self._clock = _monotonic_ms if clock is None else clock

        self._output(low)

    def report(self, units: int) -> None:
        """Add units of completed work and report the new percentage."""
        if (
            self.reporter.progress_mode is ProgressMode.NORMAL
            and self.start_time is None
            and self.total_units > 0
        ):
            self.start_time = self._clock()

        self.current_units = min(self.current_units + units, self.total_units)

        to_report = self.low
        if self.total_units:
            amount = self.current_units * self.range // self.total_units
            # Hold back 100% until the very end.
            if amount >= self.range:
                amount = self.range - 1
            to_report += amount

        self._output(to_report)

    def report_complete(self) -> None:
        """Report 100% and, for the progress bar, the elapsed time."""
        self._output(self.low + self.range)

        if self.reporter.progress_mode is not ProgressMode.NORMAL:
            return

        lines = ["\nSuccess!\n"]
        if self.start_time is not None:
            elapsed = self._clock() - self.start_time
            if elapsed > 60000:
                seconds = elapsed // 1000
                lines.append(f"Elapsed time: {seconds // 60} min {seconds % 60:02d} s\n")
            else:
                lines.append(f"Elapsed time: {elapsed // 1000}.{elapsed % 1000:03d} s\n")
        self._write("".join(lines))

    def _write(self, text: str) -> None:
        stream = self.reporter.stream
        stream.write(text.encode("utf-8"))
        stream.flush()

    def _output(self, percent: int) -> None:
        if percent <= self.last_reported_percent:
            return
        self.last_reported_percent = percent

        mode = self.reporter.progress_mode
        if mode is ProgressMode.NUMERIC:
            self._write(f"{percent}\n")
        elif mode is ProgressMode.NORMAL:
            self._write(self._progress_bar(percent))
        elif mode is ProgressMode.FRAMING:
            self.reporter.output(FrameType.PROGRESS, percent, "")

    def _progress_bar(self, percent: int) -> str:
        count = max(0, min(_MAX_EQUALS, percent * _PROGRESS_BITS // 100))
        bar = f"\r{percent:3d}% [{'=' * count:<{_PROGRESS_BITS}}]"
        if self.total_units <= 0:
            return bar
        read_units = find_natural_units(self.input_bytes)
        written_units = find_natural_units(self.current_units)
        return (
            f"{bar} {self.input_bytes / read_units:.2f} {units_to_string(read_units)} in"
            f" / {self.current_units / written_units:.2f} {units_to_string(written_units)}"
            " out     \b\b\b\b\b"
        )