# ============================================================================
# src/bloodwork_ingestion/core/upload_orchestrator.py
# ============================================================================
"""
Upload Orchestrator

Session-scoped driver for a user's uploads. Each selected file becomes an
UploadTask that moves through

    pending -> uploading -> processing -> success | error | duplicate
                         \\-> error   (storage upload failed)

Files run concurrently with each other; within one file the storage
upload always finishes before processing starts. Failures land in that
file's task and never affect the others. Retry is explicit: it resets
the task to pending, bumps its attempt number and reruns upload and
processing for that file only. Updates from a superseded attempt are
discarded.

Task state is an immutable tuple of frozen UploadTask snapshots,
replaced through apply_task_update(); subscribers receive every new
tuple.
"""

import asyncio
import dataclasses
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence, Tuple

from .context.enums import UploadStatus
from .context.upload_task import SelectedFile, UploadTask
from .object_store import build_object_key
from ..utils.exceptions import BloodworkIngestionError, DuplicateDocumentError

logger = logging.getLogger(__name__)

TaskList = Tuple[UploadTask, ...]
Subscriber = Callable[[TaskList], None]


def apply_task_update(tasks: TaskList, task_id: str, **changes) -> TaskList:
    """Return a new task tuple with ``changes`` applied to one task."""
    return tuple(
        dataclasses.replace(task, **changes) if task.id == task_id else task
        for task in tasks
    )


class Notifier(ABC):
    """User-facing notifications (toasts, in a UI)."""

    @abstractmethod
    def info(self, message: str) -> None: ...

    @abstractmethod
    def success(self, message: str) -> None: ...

    @abstractmethod
    def warning(self, message: str) -> None: ...

    @abstractmethod
    def error(self, message: str) -> None: ...


class LoggingNotifier(Notifier):
    """Sends notifications to the log."""

    def __init__(self, logger_name: str = "bloodwork_ingestion.notifications"):
        self._logger = logging.getLogger(logger_name)

    def info(self, message: str) -> None:
        self._logger.info(message)

    def success(self, message: str) -> None:
        self._logger.info(message)

    def warning(self, message: str) -> None:
        self._logger.warning(message)

    def error(self, message: str) -> None:
        self._logger.error(message)


class UploadSession:
    """
    One user's upload list.

    Args:
        owner_id: The uploading user
        storage: Object store with ``async upload(key, content) -> url``
        processor: Ingestion service with
            ``async ingest(content, file_name, owner_id)`` returning an
            object with a ``results`` list
        notifier: Receives a message on every state transition
    """

    def __init__(self, owner_id: str, storage, processor, notifier: Optional[Notifier] = None):
        self.owner_id = owner_id
        self.storage = storage
        self.processor = processor
        self.notifier = notifier or LoggingNotifier()
        self._tasks: TaskList = ()
        self._subscribers: List[Subscriber] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    @property
    def tasks(self) -> TaskList:
        return self._tasks

    @property
    def is_busy(self) -> bool:
        return any(not task.status.is_terminal for task in self._tasks)

    def get(self, task_id: str) -> Optional[UploadTask]:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register an observer; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, tasks: TaskList) -> None:
        self._tasks = tasks
        for callback in list(self._subscribers):
            try:
                callback(tasks)
            except Exception:
                logger.exception("Upload subscriber failed")

    def _update(self, task_id: str, attempt: int, **changes) -> bool:
        """Apply changes unless the task is gone or ``attempt`` was superseded."""
        task = self.get(task_id)
        if task is None or task.attempt != attempt:
            logger.debug(f"Discarding update {changes} for stale attempt {attempt} of task {task_id}")
            return False
        self._publish(apply_task_update(self._tasks, task_id, **changes))
        return True

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    async def upload_files(self, files: Sequence[SelectedFile]) -> List[UploadTask]:
        """Add files as pending tasks and drive them all concurrently."""
        if not files:
            self.notifier.error("Please select PDF files to upload")
            return []

        new_tasks = [UploadTask(file=f) for f in files]
        self._publish(self._tasks + tuple(new_tasks))
        logger.info(f"Queued {len(new_tasks)} upload(s) for owner {self.owner_id}")

        await asyncio.gather(*(self._run(task.id, task.attempt) for task in new_tasks))
        return [self.get(task.id) or task for task in new_tasks]

    async def retry(self, task_id: str) -> Optional[UploadTask]:
        """Reset one task to pending and rerun upload and processing for it."""
        task = self.get(task_id)
        if task is None:
            return None
        if task.status in (UploadStatus.SUCCESS, UploadStatus.DUPLICATE):
            self.notifier.info(f"{task.name} does not need to be retried")
            return task

        attempt = task.attempt + 1
        self._publish(apply_task_update(
            self._tasks,
            task_id,
            status=UploadStatus.PENDING,
            error_message=None,
            uploaded_url=None,
            result_count=0,
            attempt=attempt,
        ))
        logger.info(f"Retrying {task.name} (attempt {attempt})")

        await self._run(task_id, attempt)
        return self.get(task_id)

    def remove(self, task_id: str) -> None:
        self._publish(tuple(t for t in self._tasks if t.id != task_id))

    def clear(self) -> None:
        self._publish(())

    # ------------------------------------------------------------------
    # One attempt for one file
    # ------------------------------------------------------------------
    async def _run(self, task_id: str, attempt: int) -> None:
        task = self.get(task_id)
        if task is None or not self._update(task_id, attempt, status=UploadStatus.UPLOADING):
            return
        name = task.name

        try:
            key = build_object_key(self.owner_id, name)
            url = await self.storage.upload(key, task.file.content)
        except Exception as e:
            logger.error(f"Error uploading {name}: {e}")
            if self._update(task_id, attempt, status=UploadStatus.ERROR, error_message="Upload failed"):
                self.notifier.error(f"Failed to upload {name}")
            return

        if not self._update(task_id, attempt, uploaded_url=url):
            return
        self.notifier.success(f"{name} uploaded successfully")

        if not self._update(task_id, attempt, status=UploadStatus.PROCESSING):
            return

        try:
            outcome = await self.processor.ingest(task.file.content, name, self.owner_id)
        except DuplicateDocumentError:
            if self._update(task_id, attempt, status=UploadStatus.DUPLICATE):
                self.notifier.warning(f"{name} was already processed")
            return
        except BloodworkIngestionError as e:
            self._fail(task_id, attempt, name, e.message)
            return
        except Exception as e:
            logger.exception(f"Unexpected error processing {name}")
            self._fail(task_id, attempt, name, str(e) or type(e).__name__)
            return

        count = len(outcome.results)
        if count == 0:
            self._fail(task_id, attempt, name, "No results extracted")
            return

        if self._update(task_id, attempt, status=UploadStatus.SUCCESS, result_count=count):
            self.notifier.success(f"{name} processed successfully")

    def _fail(self, task_id: str, attempt: int, name: str, message: str) -> None:
        logger.error(f"Error processing {name}: {message}")
        if self._update(task_id, attempt, status=UploadStatus.ERROR, error_message=message):
            self.notifier.error(f"Failed to process {name}: {message}")
