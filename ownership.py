"""Ownership guard and the two-phase worklog delete.

A delete goes through these states:

    1. authorized    the remote author is the acting user
    2. journaled     a pending_deletion row records the intent
    3. remote done   Jira has deleted the worklog
    4. local done    cache row and journal row removed in one transaction

A crash between 2 and 4 leaves the journal row behind. The next sync asks
Jira whether the worklog still exists and finishes or abandons the delete.
"""

from datetime import datetime
from typing import Protocol

from cache import PendingDeletionJournal
from errors import (
    FATAL_ERRORS,
    ApiError,
    BadInputError,
    NotFoundError,
    NotOwnerError,
    WorklogError,
)
from models import EntryError, LocalWorklog, PendingDeletion, User, Worklog
from patterns import Patterns


class WorklogRemote(Protocol):
    def get_myself(self) -> User: ...

    def get_worklog(self, issue_key: str, worklog_id: str) -> Worklog: ...

    def delete_worklog(self, issue_key: str, worklog_id: str) -> None: ...


class DeleteStore(PendingDeletionJournal, Protocol):
    def find_worklog(self, worklog_id: str) -> LocalWorklog | None: ...


class OwnershipGuard:
    """Only the author of a worklog may change or delete it."""

    def __init__(self, client: WorklogRemote):
        self.client = client

    def authorize_mutation(
        self, issue_key: str, worklog_id: str, acting_user: User | None = None
    ) -> Worklog:
        """Fetch the remote entry and require its author to be the acting user.

        Returns the remote worklog. Raises NotOwnerError on mismatch; errors
        fetching either side propagate unchanged.
        """
        remote = self.client.get_worklog(issue_key, worklog_id)
        if acting_user is None:
            acting_user = self.client.get_myself()
        if remote.author.account_id != acting_user.account_id:
            raise NotOwnerError(
                f"Worklog {worklog_id} on {issue_key} belongs to {remote.author.display_name}, "
                f"not {acting_user.display_name}",
                operation="authorize_mutation",
                entity_id=worklog_id,
            )
        return remote


class WorklogDeleter:
    """Deletes a worklog in Jira and then in the cache, never the other way round."""

    def __init__(
        self,
        client: WorklogRemote,
        cache: DeleteStore,
        guard: OwnershipGuard | None = None,
        debug: bool = False,
    ):
        self.client = client
        self.cache = cache
        self.guard = guard or OwnershipGuard(client)
        self.debug = debug

    def delete(
        self, worklog_id: str, issue_key: str | None = None, acting_user: User | None = None
    ) -> Worklog:
        """Delete one worklog. Returns the remote entry as it was before deletion.

        If the remote delete fails the cache row stays where it is.
        """
        if not Patterns.NUMERIC_ID.match(worklog_id):
            raise BadInputError(
                f"Invalid worklog id '{worklog_id}'", operation="delete_worklog", entity_id=worklog_id
            )
        if issue_key is None:
            cached = self.cache.find_worklog(worklog_id)
            if cached is None:
                raise BadInputError(
                    f"Worklog {worklog_id} is not cached; pass its issue key",
                    operation="delete_worklog",
                    entity_id=worklog_id,
                )
            issue_key = cached.issue_key

        remote = self.guard.authorize_mutation(issue_key, worklog_id, acting_user)

        self.cache.record_pending_deletion(
            PendingDeletion(worklog_id, issue_key, datetime.now().astimezone())
        )
        try:
            self.client.delete_worklog(issue_key, worklog_id)
        except NotFoundError:
            # Already gone in Jira, e.g. a retried DELETE whose first attempt landed
            if self.debug:
                print(f"    [DEBUG] Worklog {worklog_id} was already deleted in Jira")
        except ApiError:
            # Jira answered and refused; nothing was deleted
            self.cache.remove_pending_deletion(worklog_id)
            raise
        # Any other NetworkError leaves the outcome unknown; the journal row stays
        # and recovery asks Jira on the next sync.

        self.cache.complete_pending_deletion(worklog_id)
        if self.debug:
            print(f"    [DEBUG] Deleted worklog {worklog_id} on {issue_key}")
        return remote

    def recover_pending(self) -> int:
        return recover_pending_deletions(self.client, self.cache, debug=self.debug)


def recover_pending_deletions(
    client: WorklogRemote,
    cache: PendingDeletionJournal,
    errors: list[EntryError] | None = None,
    debug: bool = False,
) -> int:
    """Finish or abandon deletes interrupted after journaling.

    Returns how many cache rows were removed. Entries Jira cannot be asked
    about right now stay journaled and are reported in errors.
    """
    recovered = 0
    for pending in cache.pending_deletions():
        try:
            client.get_worklog(pending.issue_key, pending.worklog_id)
        except NotFoundError:
            cache.complete_pending_deletion(pending.worklog_id)
            recovered += 1
            if debug:
                print(f"    [DEBUG] Recovered delete of worklog {pending.worklog_id}")
            continue
        except FATAL_ERRORS:
            raise
        except WorklogError as e:
            if errors is not None:
                errors.append(EntryError(pending.issue_key, pending.worklog_id, str(e)))
            continue
        # Still in Jira: the remote delete never happened
        cache.remove_pending_deletion(pending.worklog_id)
        if debug:
            print(f"    [DEBUG] Abandoned delete of worklog {pending.worklog_id}")
    return recovered
