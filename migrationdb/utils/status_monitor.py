"""
Status Monitoring Module

Tracks the current phase and the bytes flowing through each stream of a
migration. Streams are updated from worker threads, so all state is guarded
by one lock.
"""

import sys
import threading
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Optional, Any
from dataclasses import dataclass

from tqdm import tqdm

from .logger import format_bytes


class MigrationPhase(Enum):
    """Phases of a migration run."""
    INITIALIZING = "INITIALIZING"
    CONNECTING = "CONNECTING"
    TRANSFERRING = "TRANSFERRING"
    VERIFYING = "VERIFYING"
    CHECKSUM = "CHECKSUM"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class StreamStatus(Enum):
    """Status of one byte stream (a dump leg)."""
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass
class StreamProgress:
    """Progress information for a single stream."""
    name: str
    status: StreamStatus = StreamStatus.IN_PROGRESS
    bytes_streamed: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def duration(self) -> Optional[timedelta]:
        """Calculate duration if started."""
        if self.start_time is None:
            return None
        end = self.end_time or datetime.now()
        return end - self.start_time

    @property
    def bytes_per_second(self) -> float:
        """Calculate throughput."""
        duration = self.duration
        if duration is None or duration.total_seconds() == 0:
            return 0.0
        return self.bytes_streamed / duration.total_seconds()


class StatusMonitor:
    """Monitors migration phase and stream throughput."""

    def __init__(self, enable_progress_bar: bool = False, out=None):
        """
        Args:
            enable_progress_bar: Render a tqdm byte counter per stream
            out: Text stream for status lines (default stdout)
        """
        self.enable_progress_bar = enable_progress_bar
        self.out = out or sys.stdout
        self.phase = MigrationPhase.INITIALIZING
        self.start_time = datetime.now()
        self.end_time: Optional[datetime] = None
        self.streams: Dict[str, StreamProgress] = {}
        self.lock = threading.Lock()
        self._bars: Dict[str, tqdm] = {}
        self._phase_start_times: Dict[MigrationPhase, datetime] = {}

    def set_phase(self, phase: MigrationPhase) -> None:
        """
        Set current migration phase.

        Args:
            phase: New migration phase
        """
        with self.lock:
            old_phase = self.phase
            self.phase = phase
            self._phase_start_times[phase] = datetime.now()

            print(f"🔄 Phase changed: {old_phase.value} → {phase.value}", file=self.out)

    def start_stream(self, name: str) -> None:
        """Begin tracking a stream; restarting a name resets its counters."""
        with self.lock:
            self.streams[name] = StreamProgress(name=name, start_time=datetime.now())
            if self.enable_progress_bar:
                self._bars[name] = tqdm(
                    desc=name, unit='B', unit_scale=True, unit_divisor=1024,
                    file=sys.stderr, leave=False
                )

    def add_bytes(self, name: str, count: int) -> None:
        """Account count bytes to a stream."""
        with self.lock:
            progress = self.streams.get(name)
            if progress is None:
                return
            progress.bytes_streamed += count
            bar = self._bars.get(name)
            if bar is not None:
                bar.update(count)

    def complete_stream(self, name: str, success: bool = True,
                        error_message: Optional[str] = None) -> None:
        """
        Mark a stream as finished.

        Args:
            name: Stream name
            success: Whether the stream ended cleanly
            error_message: Error message if failed
        """
        with self.lock:
            progress = self.streams.get(name)
            if progress is None:
                return

            progress.end_time = datetime.now()
            progress.error_message = error_message
            progress.status = StreamStatus.COMPLETED if success else StreamStatus.FAILED

            bar = self._bars.pop(name, None)
            if bar is not None:
                bar.close()

    def complete_migration(self, success: bool = True) -> None:
        """Mark the run as finished and print the summary."""
        with self.lock:
            self.end_time = datetime.now()
            self.phase = MigrationPhase.COMPLETED if success else MigrationPhase.FAILED
            for bar in self._bars.values():
                bar.close()
            self._bars.clear()

            self.print_final_summary()

    def get_stream_bytes(self, name: str) -> int:
        with self.lock:
            progress = self.streams.get(name)
            return progress.bytes_streamed if progress else 0

    def get_status_summary(self) -> Dict[str, Any]:
        """
        Get current status summary.

        Returns:
            Dictionary containing current status information
        """
        with self.lock:
            end = self.end_time or datetime.now()
            return {
                'phase': self.phase.value,
                'duration': (end - self.start_time).total_seconds(),
                'streams': {
                    name: {
                        'status': p.status.value,
                        'bytes': p.bytes_streamed,
                        'bytes_per_second': p.bytes_per_second,
                        'error_message': p.error_message,
                    }
                    for name, p in self.streams.items()
                },
            }

    def print_final_summary(self) -> None:
        """Print final migration summary."""
        print("\n" + "=" * 60, file=self.out)
        print("📊 MIGRATION SUMMARY", file=self.out)
        print("=" * 60, file=self.out)

        end = self.end_time or datetime.now()
        hours, remainder = divmod((end - self.start_time).total_seconds(), 3600)
        minutes, seconds = divmod(remainder, 60)
        print(f"Duration: {int(hours):02d}:{int(minutes):02d}:{int(seconds):02d}", file=self.out)
        print(f"Phase: {self.phase.value}", file=self.out)

        if self.streams:
            print(file=self.out)
            print("📋 Streams:", file=self.out)
            for progress in self.streams.values():
                icon = "✅" if progress.status == StreamStatus.COMPLETED else "❌"
                if progress.status == StreamStatus.IN_PROGRESS:
                    icon = "⏳"
                print(f"  {icon} {progress.name}: {format_bytes(progress.bytes_streamed)} "
                      f"({format_bytes(progress.bytes_per_second)}/s)", file=self.out)
                if progress.error_message:
                    print(f"     Error: {progress.error_message}", file=self.out)

        print("=" * 60, file=self.out)


class MeteredWriter:
    """Pass-through writer that reports every write to a StatusMonitor."""

    def __init__(self, writer, monitor: StatusMonitor, name: str):
        self._writer = writer
        self._monitor = monitor
        self._name = name

    def write(self, data: bytes) -> int:
        written = self._writer.write(data)
        self._monitor.add_bytes(self._name, len(data))
        return written

    def flush(self) -> None:
        flush = getattr(self._writer, 'flush', None)
        if flush is not None:
            flush()

    def close(self) -> None:
        self._writer.close()

    def close_with_error(self, error: BaseException) -> None:
        self._writer.close_with_error(error)
