import logging
from typing import Callable

from retail_sync.errors import ErrorKind, is_network_error
from retail_sync.models import (
    SESSION_CONFLICT,
    DrainResult,
    OutcomeKind,
    PendingSubmission,
    SubmitOutcome,
    SubmitRequest,
    now_ms,
)

logger = logging.getLogger(__name__)

# User-facing status strings (shown as-is by the store UI)
MSG_QUEUED_OFFLINE = "已暫存，上線後自動同步"
MSG_QUEUED_UNSTABLE = "網路不穩，已暫存等待同步"
MSG_QUEUED_INTERRUPTED = "網路中斷，已暫存等待同步"
MSG_QUEUE_FAILED = "離線暫存失敗"
MSG_SUBMIT_FAILED = "提交失敗"

Callback = Callable[[str], None]


class SubmissionCoordinator:
    """Sends submissions to the hosted database or parks them in the local queue.

    store        -- PendingSubmissionStore (or anything with the same methods)
    remote       -- SupabaseClient-like object with upsert() and configured
    connectivity -- object exposing is_online (see ConnectivityMonitor)
    """

    def __init__(self, store, remote, connectivity, clock: Callable[[], int] = now_ms,
                 prune_stale_items: bool = True):
        self.store = store
        self.remote = remote
        self.connectivity = connectivity
        self.clock = clock
        self.prune_stale_items = prune_stale_items

    # --- Submit path ---

    async def submit(self, request: SubmitRequest, on_success: Callback | None = None,
                     on_error: Callback | None = None) -> SubmitOutcome:
        """Sends the submission now, or queues it if the remote is unreachable.

        Exactly one of the callbacks is invoked with the outcome message.
        """
        outcome = await self._submit(request)
        if outcome.ok:
            if on_success:
                on_success(outcome.message)
        elif on_error:
            on_error(outcome.message)
        return outcome

    async def _submit(self, request: SubmitRequest) -> SubmitOutcome:
        if not self.connectivity.is_online or not self.remote.configured:
            logger.info(f"Offline or remote not configured, queueing {request.type.value} session {request.session_id}")
            return await self._queue(request, MSG_QUEUED_OFFLINE, reason=None)

        submission_type = request.type
        try:
            result = await self.remote.upsert(submission_type.sessions_table, request.session, SESSION_CONFLICT)
            if result.error:
                if is_network_error(result.error):
                    logger.warning(f"Network error on session {request.session_id}, queueing: {result.error.message}")
                    return await self._queue(request, MSG_QUEUED_UNSTABLE, reason=ErrorKind.NETWORK)
                logger.error(f"Session upsert rejected for {request.session_id}: {result.error.message}")
                return SubmitOutcome(kind=OutcomeKind.FAILED, reason=ErrorKind.REMOTE,
                                     message=f"提交失敗：{result.error.message}")

            if request.items:
                result = await self.remote.upsert(submission_type.items_table, request.items,
                                                  submission_type.items_conflict)
                if result.error:
                    logger.error(f"Items upsert failed for {request.session_id}: {result.error.message}")
                    return SubmitOutcome(kind=OutcomeKind.FAILED, reason=ErrorKind.ITEMS,
                                         message=f"項目儲存失敗：{result.error.message}")
        except Exception as e:
            logger.exception(f"Unexpected error submitting session {request.session_id}, queueing: {e}")
            return await self._queue(request, MSG_QUEUED_INTERRUPTED, reason=ErrorKind.UNEXPECTED,
                                     failure_message=MSG_SUBMIT_FAILED)

        if self.prune_stale_items:
            await self._prune_stale_items(request)

        logger.info(f"Submitted {submission_type.value} session {request.session_id} ({len(request.items)} items)")
        return SubmitOutcome(kind=OutcomeKind.SYNCED)

    async def _queue(self, request: SubmitRequest, message: str, reason: ErrorKind | None,
                     failure_message: str = MSG_QUEUE_FAILED) -> SubmitOutcome:
        submission = request.to_pending(created_at=self.clock())
        try:
            await self.store.enqueue(submission)
        except Exception as e:
            logger.error(f"Could not queue submission {submission.id}: {e}")
            return SubmitOutcome(kind=OutcomeKind.FAILED, reason=ErrorKind.STORAGE, message=failure_message)
        return SubmitOutcome(kind=OutcomeKind.QUEUED, reason=reason, message=message)

    async def _prune_stale_items(self, request: SubmitRequest):
        """Deletes item rows of the session that are not part of the new list.

        Best effort: leftover rows only mean extra data, so failures are logged.
        """
        submission_type = request.type
        key = submission_type.item_key
        keep = {item.get(key) for item in request.items}
        try:
            existing = await self.remote.select_column(submission_type.items_table, key, request.session_id)
            stale = [value for value in existing if value not in keep]
            if stale:
                await self.remote.delete_where_in(submission_type.items_table, key, stale, request.session_id)
        except Exception as e:
            logger.warning(f"Could not prune stale items for session {request.session_id}: {e}")

    # --- Replay / drain path ---

    async def replay(self, submission: PendingSubmission) -> bool:
        """Re-applies one queued submission. True only if session and items both landed."""
        submission_type = submission.type
        try:
            result = await self.remote.upsert(submission_type.sessions_table, submission.payload.session,
                                              SESSION_CONFLICT)
            if result.error:
                logger.error(f"Session upsert failed for {submission.id}: {result.error.message}")
                return False

            if submission.payload.items:
                result = await self.remote.upsert(submission_type.items_table, submission.payload.items,
                                                  submission_type.items_conflict)
                if result.error:
                    logger.error(f"Items upsert failed for {submission.id}: {result.error.message}")
                    return False
        except Exception as e:
            logger.exception(f"Replay error for {submission.id}: {e}")
            return False
        return True

    async def drain(self) -> DrainResult:
        """Replays every queued submission once, removing the ones that succeed."""
        pending = sorted(await self.store.list_all(), key=lambda s: s.created_at)
        if not pending:
            logger.info("No pending submissions to sync.")
            return DrainResult()

        logger.info(f"Found {len(pending)} pending submissions to sync.")
        result = DrainResult()
        for submission in pending:
            if not await self.replay(submission):
                result.failed += 1
                continue
            try:
                await self.store.dequeue(submission.id)
            except Exception as e:
                # Stays queued, the next replay is idempotent
                logger.error(f"Synced {submission.id} but could not remove it from the queue: {e}")
                result.failed += 1
                continue
            result.synced += 1
            logger.info(f"Submission {submission.id} synced and removed from queue")

        logger.info(f"Drain finished: {result.synced} synced, {result.failed} failed")
        return result

    async def pending_count(self) -> int:
        """Number of submissions still waiting in the queue."""
        return await self.store.count()
