"""Typed errors raised by the snapshot/restore engine."""


class BackupError(Exception):
    """Base class for all engine errors."""


class NetworkBlocked(BackupError):
    """The network gate rejected the call before any remote request."""

    def __init__(self, connection: str, message: str | None = None):
        self.connection = connection
        super().__init__(
            message or f"Network operation blocked on {connection} connection"
        )


class RemoteError(BackupError):
    """Base class for remote record store failures."""

    retryable = False


class RemoteUnavailable(RemoteError):
    """The record store is unreachable or rejected our credentials."""


class TransientRemoteError(RemoteError):
    """A timeout or throttling response; safe to retry."""

    retryable = True


class QuotaExceeded(TransientRemoteError):
    """The store rejected a request for size or rate limits.

    Retried by the batch writer up to its bound, then surfaced with the ids
    that could not be written.
    """

    def __init__(
        self,
        message: str = "Remote quota exceeded",
        failed_record_ids: list[str] | None = None,
    ):
        self.failed_record_ids = list(failed_record_ids or [])
        super().__init__(message)


class PermanentRemoteError(RemoteError):
    """The store rejected the batch outright (schema, oversized batch)."""


class PartialWriteFailure(BackupError):
    """Some records of a snapshot could not be written."""

    def __init__(self, failed_record_ids: list[str], interrupted: bool = False):
        self.failed_record_ids = list(failed_record_ids)
        self.interrupted = interrupted
        reason = "connection changed" if interrupted else "write failed"
        super().__init__(
            f"{len(self.failed_record_ids)} record(s) not written ({reason})"
        )


class SnapshotNotFound(BackupError):
    """No metadata record exists for the requested snapshot."""

    def __init__(self, snapshot_id: str):
        self.snapshot_id = snapshot_id
        super().__init__(f"Snapshot {snapshot_id} not found")


class DecodeFailure(BackupError):
    """A single record could not be turned back into an entity.

    Reported in restore results; never fatal on its own.
    """

    def __init__(self, record_id: str, reason: str):
        self.record_id = record_id
        self.reason = reason
        super().__init__(f"Record {record_id}: {reason}")


class RestoreError(BackupError):
    """A restore step failed; ``step`` names which one."""

    step = "restore"

    def __init__(self, message: str, step: str | None = None):
        if step is not None:
            self.step = step
        super().__init__(f"{self.step}: {message}")


class DecodeFailed(RestoreError):
    """The snapshot as a whole could not be decoded."""

    step = "decode"


class ClearFailed(RestoreError):
    """Deleting existing local entities failed; nothing was changed."""

    step = "clear"


class CommitFailed(RestoreError):
    """Inserting or saving restored entities into the local store failed."""

    step = "commit"
