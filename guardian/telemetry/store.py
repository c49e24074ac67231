"""
JSON Lines alert history store.

Append-only persistence of alert and acknowledgment records, written by a
background thread so the alert path never blocks on disk I/O.
"""

import json
import logging
import time
import threading
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any, List
from queue import Queue, Full, Empty

from guardian.alerts.types import AlertEvent
from guardian.interfaces import AlertStore

logger = logging.getLogger(__name__)


@dataclass
class StoreRecord:
    """One line of the alert history file."""
    # "alert" or "ack"
    kind: str
    # ISO 8601 write time
    logged_at: str
    alert_id: str
    alert: Optional[Dict[str, Any]] = None
    acknowledged_at: Optional[float] = None

    def to_json(self) -> str:
        """Serialize to JSON string, omitting fields that do not apply to the kind."""
        data = asdict(self)
        for key in ("alert", "acknowledged_at"):
            if data.get(key) is None:
                del data[key]
        return json.dumps(data, separators=(',', ':'), default=str)


class JsonlAlertStore(AlertStore):
    """
    Append-only JSON Lines alert store.

    Features:
    - Non-blocking writes via background thread
    - Configurable flush interval
    - Bounded queue (records dropped, never blocking, when full)
    - File rotation at configurable size

    Usage:
        store = JsonlAlertStore("alerts.jsonl")
        store.start()
        store.record_alert(alert)
        store.update_acknowledgment(alert.id, time.time())
        store.stop()
    """

    DEFAULT_FLUSH_INTERVAL = 1.0  # seconds
    DEFAULT_MAX_BUFFER = 1000  # records
    DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB

    def __init__(
        self,
        log_file: str,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
        max_buffer: int = DEFAULT_MAX_BUFFER,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    ):
        """
        Args:
            log_file: Path to output .jsonl file
            flush_interval: Seconds between flushes
            max_buffer: Maximum records queued in memory
            max_file_size: File size that triggers rotation
        """
        self._log_file = Path(log_file)
        self._flush_interval = flush_interval
        self._max_file_size = max_file_size

        self._queue: Queue = Queue(maxsize=max_buffer)
        self._writer_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._write_lock = threading.Lock()
        self._file_handle = None

        self._records_written = 0
        self._records_dropped = 0

    # -------------------------------------------------------------------------
    # AlertStore
    # -------------------------------------------------------------------------

    def record_alert(self, alert: AlertEvent) -> None:
        self._enqueue(StoreRecord(
            kind="alert",
            logged_at=datetime.now(timezone.utc).isoformat(),
            alert_id=alert.id,
            alert=alert.to_dict(),
        ))

    def update_acknowledgment(self, alert_id: str, acknowledged_at: float) -> None:
        self._enqueue(StoreRecord(
            kind="ack",
            logged_at=datetime.now(timezone.utc).isoformat(),
            alert_id=alert_id,
            acknowledged_at=acknowledged_at,
        ))

    def _enqueue(self, record: StoreRecord) -> bool:
        try:
            self._queue.put_nowait(record)
            return True
        except Full:
            self._records_dropped += 1
            logger.warning(f"Alert store queue full - dropped {record.kind} for {record.alert_id}")
            return False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the background writer thread."""
        if self._writer_thread is not None and self._writer_thread.is_alive():
            return

        self._stop_event.clear()
        self._writer_thread = threading.Thread(
            target=self._writer_loop,
            name="AlertStoreWriter",
            daemon=True,
        )
        self._writer_thread.start()
        logger.info(f"Alert store started: {self._log_file}")

    def stop(self) -> None:
        """Stop the writer and flush queued records."""
        self._stop_event.set()

        if self._writer_thread is not None:
            self._writer_thread.join(timeout=5.0)
            self._writer_thread = None

        self.flush()

        with self._write_lock:
            if self._file_handle is not None:
                self._file_handle.close()
                self._file_handle = None

        logger.info(
            f"Alert store stopped. "
            f"Written: {self._records_written}, Dropped: {self._records_dropped}"
        )

    def flush(self) -> None:
        """Write everything currently queued (usable without the writer thread)."""
        buffer: List[str] = []
        while True:
            try:
                buffer.append(self._queue.get_nowait().to_json())
            except Empty:
                break
        if buffer:
            self._write_buffer(buffer)

    def _writer_loop(self) -> None:
        buffer: List[str] = []
        last_flush = time.monotonic()

        while not self._stop_event.is_set():
            try:
                record = self._queue.get(timeout=0.1)
                buffer.append(record.to_json())
            except Empty:
                pass

            current_time = time.monotonic()
            should_flush = (
                current_time - last_flush >= self._flush_interval or
                len(buffer) >= 100
            )
            if should_flush and buffer:
                self._write_buffer(buffer)
                buffer.clear()
                last_flush = current_time

        if buffer:
            self._write_buffer(buffer)

    def _write_buffer(self, buffer: List[str]) -> None:
        with self._write_lock:
            try:
                self._check_rotation()

                if self._file_handle is None:
                    self._log_file.parent.mkdir(parents=True, exist_ok=True)
                    self._file_handle = open(self._log_file, "a", encoding="utf-8")

                for line in buffer:
                    self._file_handle.write(line + "\n")

                self._file_handle.flush()
                self._records_written += len(buffer)

            except OSError as e:
                logger.error(f"Alert store write error: {e}")
                self._records_dropped += len(buffer)

    def _check_rotation(self) -> None:
        if not self._log_file.exists():
            return

        if self._log_file.stat().st_size < self._max_file_size:
            return

        if self._file_handle is not None:
            self._file_handle.close()
            self._file_handle = None

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        rotated_name = self._log_file.with_suffix(f".{timestamp}.jsonl")

        try:
            self._log_file.rename(rotated_name)
            logger.info(f"Rotated alert store to: {rotated_name}")
        except OSError as e:
            logger.error(f"Alert store rotation failed: {e}")

    # -------------------------------------------------------------------------
    # Reading back
    # -------------------------------------------------------------------------

    def load_history(self) -> List[Dict[str, Any]]:
        """
        Rebuild alert history from the current file.

        Acknowledgment records are folded into their alerts. Malformed lines
        are skipped.

        Returns:
            Alert dicts, newest first
        """
        if not self._log_file.exists():
            return []

        alerts: Dict[str, Dict[str, Any]] = {}
        with open(self._log_file, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning(f"Skipping malformed line {line_no} in {self._log_file}")
                    continue

                if record.get("kind") == "alert" and record.get("alert"):
                    alerts[record["alert_id"]] = record["alert"]
                elif record.get("kind") == "ack" and record.get("alert_id") in alerts:
                    entry = alerts[record["alert_id"]]
                    entry["acknowledged"] = True
                    entry["acknowledged_at"] = record.get("acknowledged_at")

        return sorted(alerts.values(), key=lambda a: a.get("timestamp", 0), reverse=True)

    @property
    def records_written(self) -> int:
        return self._records_written

    @property
    def records_dropped(self) -> int:
        return self._records_dropped

    def __enter__(self) -> "JsonlAlertStore":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
