"""Persistence bridge — saving and loading sessions through the file service.

Saved file layouts, newest first:

    {"kind": "MapWithQuestions", "version": "1.0",
     "geojson": FeatureCollection, "answers": {...}, "savedAt": ISO8601}
    FeatureCollection                       (bare GeoJSON)
    {"geojsonData": FeatureCollection, ...}  (oldest)

Files written by the first browser client spell the envelope marker as
``type`` and the answers as ``questionsAnswers``; both are accepted.

Save policy:
    - Explicit saves run immediately.
    - Auto-saves are coalesced: a request arms one timer for the end of the
      debounce window (first request of the window + interval, and never
      sooner than interval after the last save). Further requests replace
      the timer without moving the deadline past that point.
    - Only one save is in flight at a time; requests made meanwhile are
      dropped, not queued.

Load policy:
    - Loading replaces the session contents, never merges.
    - Each load takes a request token; a response arriving after a newer
      load was started is discarded.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from loguru import logger

from mapsketch.client import FileApiClient
from mapsketch.collaborators import AnswerSource, LogNotifier, Notifier
from mapsketch.config import settings
from mapsketch.editor import FeatureEditor
from mapsketch.errors import (
    DocumentFormatError,
    DocumentNotFoundError,
    FileApiError,
    GeoJSONFormatError,
    InvalidFileNameError,
    UnauthorizedError,
)
from mapsketch.geojson import export_geojson, import_geojson
from mapsketch.session import Session

ENVELOPE_KIND = "MapWithQuestions"
ENVELOPE_VERSION = "1.0"
MIN_SAVE_INTERVAL_MS = 2000

# Placeholder names that stale browser forms used to submit.
BLOCKED_FILE_NAMES = frozenset({"11", "123", "1233", "352345", "undefined"})


class DocumentFormat(str, Enum):
    """Which saved-file layout a document uses."""
    ENVELOPE = "envelope"
    FEATURE_COLLECTION = "feature_collection"
    LEGACY_WRAPPED = "legacy_wrapped"


class SaveOutcome(str, Enum):
    SAVED = "saved"
    BUSY = "busy"            # another save was in flight; request dropped
    REJECTED = "rejected"    # invalid file name, nothing sent
    FAILED = "failed"        # the file service refused or was unreachable


@dataclass
class LoadedDocument:
    """A saved document reduced to what the session needs.

    Attributes:
        format: Detected file layout.
        feature_collection: The map contents.
        answers: Question answers for envelopes, None for older layouts.
    """

    format: DocumentFormat
    feature_collection: dict
    answers: dict | None = None


# ---------------------------------------------------------------------------
# File format
# ---------------------------------------------------------------------------

def validate_file_name(file_name: str | None) -> str:
    """Return the trimmed file name.

    Raises:
        InvalidFileNameError: If the name is empty or a known placeholder.
    """
    name = file_name.strip() if isinstance(file_name, str) else ""
    if not name:
        raise InvalidFileNameError("Enter a file name")
    if name in BLOCKED_FILE_NAMES or name.startswith("undefined_"):
        raise InvalidFileNameError(f"File name not allowed: {name}")
    return name


def build_envelope(
    feature_collection: dict,
    answers: dict[str, str] | None = None,
    saved_at: datetime | None = None,
) -> dict:
    """Bundle a FeatureCollection and question answers into a save envelope."""
    saved_at = saved_at or datetime.now(timezone.utc)
    return {
        "kind": ENVELOPE_KIND,
        "version": ENVELOPE_VERSION,
        "geojson": feature_collection,
        "answers": dict(answers or {}),
        "savedAt": saved_at.isoformat(),
    }


def classify_document(doc) -> LoadedDocument:
    """Detect the layout of a saved document and extract its parts.

    Raises:
        DocumentFormatError: If no FeatureCollection can be found.
    """
    if isinstance(doc, (str, bytes)):
        try:
            doc = json.loads(doc)
        except json.JSONDecodeError as e:
            raise DocumentFormatError(f"Document is not JSON: {e}") from e

    if not isinstance(doc, dict):
        raise DocumentFormatError(f"Unexpected document type: {type(doc).__name__}")

    marker = doc.get("kind", doc.get("type"))
    if marker == ENVELOPE_KIND or "geojson" in doc:
        fc = _feature_collection(doc.get("geojson"))
        if fc is None:
            raise DocumentFormatError("Envelope holds no FeatureCollection")
        answers = doc.get("answers", doc.get("questionsAnswers"))
        if not isinstance(answers, dict):
            answers = {}
        return LoadedDocument(DocumentFormat.ENVELOPE, fc, answers)

    fc = _feature_collection(doc)
    if fc is not None:
        return LoadedDocument(DocumentFormat.FEATURE_COLLECTION, fc)

    fc = _feature_collection(doc.get("geojsonData"))
    if fc is not None:
        return LoadedDocument(DocumentFormat.LEGACY_WRAPPED, fc)

    raise DocumentFormatError("Unrecognized document format")


def _feature_collection(value) -> dict | None:
    """Return ``value`` as a FeatureCollection dict, or None if it is not one."""
    if not isinstance(value, dict) or value.get("type") != "FeatureCollection":
        return None
    features = value.get("features")
    if isinstance(features, str):
        # Old server rows stored the features array as JSON text
        try:
            features = json.loads(features)
        except json.JSONDecodeError:
            return None
        value = {**value, "features": features}
    if not isinstance(features, list):
        return None
    return value


# ---------------------------------------------------------------------------
# Auto-save debouncing
# ---------------------------------------------------------------------------

def _current_loop() -> asyncio.AbstractEventLoop:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.get_event_loop()


class SaveScheduler:
    """Coalesces auto-save requests into one trailing save per window.

    Holds at most one outstanding timer. ``trigger`` is called (without
    arguments) when the timer fires.
    """

    def __init__(
        self,
        trigger: Callable[[], None],
        interval: float = MIN_SAVE_INTERVAL_MS / 1000,
        clock: Callable[[], float] = time.monotonic,
        call_later: Callable | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            trigger: Starts the actual save.
            interval: Minimum seconds between saves.
            clock: Monotonic time source in seconds.
            call_later: ``(delay, callback) -> handle with cancel()``;
                defaults to the running event loop's ``call_later``.
        """
        self.trigger = trigger
        self.interval = interval
        self.clock = clock
        self._call_later = call_later
        self._handle = None
        self._window_start: float | None = None
        self.last_save: float | None = None
        self.deadline: float | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def request(self) -> float:
        """Schedule (or reschedule) the trailing save.

        Returns:
            Clock time at which the save will fire.
        """
        now = self.clock()
        if self._window_start is None:
            self._window_start = now
        deadline = self._window_start + self.interval
        if self.last_save is not None:
            deadline = max(deadline, self.last_save + self.interval)

        self._cancel_handle()
        call_later = self._call_later or _current_loop().call_later
        self._handle = call_later(max(0.0, deadline - now), self._fire)
        self.deadline = deadline
        return deadline

    def mark_saved(self) -> None:
        """Record that a save just completed."""
        self.last_save = self.clock()

    def cancel(self) -> None:
        """Drop the pending auto-save, if any."""
        self._cancel_handle()
        self._window_start = None
        self.deadline = None

    def _cancel_handle(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._window_start = None
        self.deadline = None
        self.trigger()


# ---------------------------------------------------------------------------
# Bridge
# ---------------------------------------------------------------------------

class PersistenceBridge:
    """Saves and loads one Session through the file service."""

    def __init__(
        self,
        session: Session,
        api: FileApiClient,
        editor: FeatureEditor | None = None,
        answers: AnswerSource | None = None,
        notifier: Notifier | None = None,
        on_unauthorized: Callable[[], None] | None = None,
        min_save_interval_ms: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        call_later: Callable | None = None,
    ) -> None:
        self.session = session
        self.api = api
        self.editor = editor or FeatureEditor.for_session(session)
        self.answers = answers
        self.notifier = notifier or LogNotifier()
        self.on_unauthorized = on_unauthorized
        if min_save_interval_ms is None:
            min_save_interval_ms = settings.min_save_interval_ms
        self.scheduler = SaveScheduler(
            self._autosave_now,
            interval=min_save_interval_ms / 1000,
            clock=clock,
            call_later=call_later,
        )
        self.current_file_name: str | None = None
        self._saving = False
        self._load_seq = 0
        self._autosave_task: asyncio.Task | None = None

    @property
    def is_saving(self) -> bool:
        return self._saving

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    async def save(self, file_name: str | None = None) -> SaveOutcome:
        """Save the session now, bypassing the debounce window.

        Args:
            file_name: Target name; defaults to the current file.
        """
        if self._saving:
            logger.debug("Save already in progress, dropping request")
            return SaveOutcome.BUSY

        try:
            name = validate_file_name(
                file_name if file_name is not None else self.current_file_name
            )
        except InvalidFileNameError as e:
            self.notifier.notify(str(e), "error")
            return SaveOutcome.REJECTED

        self._saving = True
        self.scheduler.cancel()
        try:
            answers = self.answers.get_question_answers() if self.answers else {}
            envelope = build_envelope(export_geojson(self.session), answers)
            await self.api.save_document(name, envelope)
        except UnauthorizedError:
            self._unauthorized()
            return SaveOutcome.FAILED
        except FileApiError as e:
            self.notifier.notify(f"Failed to save '{name}': {e.message}", "error")
            return SaveOutcome.FAILED
        finally:
            self._saving = False

        self.scheduler.mark_saved()
        self.current_file_name = name
        count = len(envelope["geojson"]["features"])
        logger.info(f"Saved '{name}' ({count} features, {len(answers)} answers)")
        if answers:
            self.notifier.notify(f"Map and answers saved to '{name}'", "success")
        else:
            self.notifier.notify(f"Map saved to '{name}'", "success")
        return SaveOutcome.SAVED

    def request_autosave(self) -> bool:
        """Queue a debounced save of the current file.

        Returns:
            False if there is no current file to save to.
        """
        if not self.current_file_name:
            logger.debug("Auto-save requested with no current file, ignoring")
            return False
        self.scheduler.request()
        return True

    def _autosave_now(self) -> None:
        task = _current_loop().create_task(self.save())
        task.add_done_callback(self._autosave_done)
        self._autosave_task = task

    def _autosave_done(self, task: asyncio.Task) -> None:
        """Report auto-save failures that ``save`` did not turn into an outcome."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        logger.opt(exception=exc).error(f"Auto-save of '{self.current_file_name}' failed")
        self.notifier.notify(f"Auto-save failed: {exc}", "error")

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    async def load(self, file_name: str, owner: str | None = None) -> LoadedDocument | None:
        """Load a saved document, replacing the session contents.

        Args:
            file_name: Name of the document.
            owner: Account email to load another user's file (admin/teacher).

        Returns:
            The classified document, or None if the load failed or was
            superseded by a newer load.
        """
        name = file_name.strip() if isinstance(file_name, str) else ""
        if not name:
            self.notifier.notify("Select a file to load", "error")
            return None

        self._load_seq += 1
        token = self._load_seq
        try:
            doc = await self.api.load_document(name, owner=owner)
        except UnauthorizedError:
            self._unauthorized()
            return None
        except DocumentNotFoundError:
            self.notifier.notify(f"File '{name}' not found", "error")
            return None
        except FileApiError as e:
            self.notifier.notify(f"Failed to load '{name}': {e.message}", "error")
            return None

        if token != self._load_seq:
            logger.info(f"Discarding stale load of '{name}' (request {token} < {self._load_seq})")
            return None

        try:
            loaded = classify_document(doc)
            result = import_geojson(self.session, loaded.feature_collection, self.editor)
        except (DocumentFormatError, GeoJSONFormatError) as e:
            logger.warning(f"Cannot load '{name}': {e}")
            self.notifier.notify(f"File '{name}' has an invalid format", "error")
            return None

        if loaded.answers is not None and self.answers is not None:
            self.answers.set_question_answers(loaded.answers)
        if owner is None:
            self.current_file_name = name

        logger.info(
            f"Loaded '{name}' ({loaded.format.value}, {result.imported} shapes)"
        )
        if loaded.format is DocumentFormat.ENVELOPE and loaded.answers:
            self.notifier.notify(f"Map and answers loaded from '{name}'", "success")
        elif loaded.format is DocumentFormat.ENVELOPE:
            self.notifier.notify(f"Map loaded from '{name}'", "success")
        else:
            self.notifier.notify(f"Map loaded from '{name}' (legacy format)", "success")
        return loaded

    # ------------------------------------------------------------------
    # File management
    # ------------------------------------------------------------------

    async def list_documents(self) -> list[str]:
        """Names of the account's files; empty on failure."""
        try:
            return await self.api.list_documents()
        except UnauthorizedError:
            self._unauthorized()
        except FileApiError as e:
            self.notifier.notify(f"Failed to list files: {e.message}", "error")
        return []

    async def list_all_documents(self) -> list[dict]:
        """Files of every account (admin/teacher); empty on failure."""
        try:
            return await self.api.list_all_documents()
        except UnauthorizedError:
            self._unauthorized()
        except FileApiError as e:
            self.notifier.notify(f"Failed to list files: {e.message}", "error")
        return []

    async def delete_document(self, file_name: str) -> bool:
        name = file_name.strip() if isinstance(file_name, str) else ""
        if not name:
            self.notifier.notify("Select a file to delete", "error")
            return False
        try:
            await self.api.delete_document(name)
        except UnauthorizedError:
            self._unauthorized()
            return False
        except DocumentNotFoundError:
            self.notifier.notify(f"File '{name}' not found or already deleted", "error")
            return False
        except FileApiError as e:
            self.notifier.notify(f"Failed to delete '{name}': {e.message}", "error")
            return False

        if self.current_file_name == name:
            self.current_file_name = None
            self.scheduler.cancel()
        logger.info(f"Deleted '{name}'")
        self.notifier.notify(f"File '{name}' deleted", "success")
        return True

    def _unauthorized(self) -> None:
        self.notifier.notify("Session expired, please sign in again", "error")
        if self.on_unauthorized is not None:
            self.on_unauthorized()
