"""
Change feed reader.

Reads the changes recorded in a dataset store since its last checkpoint and
returns them as ChangeEntry objects in ascending sequence order.
"""

from typing import List, Optional

from pydantic import ValidationError

from ..audit.logger import BackupLogger
from ..config.models import ChangeEntry, SequenceToken
from ..couch_operations import CouchOperations
from ..exceptions import ChangeFeedError, StoreRequestError
from ..utils import sequence_key

INITIAL_SEQUENCE = "0"


class ChangeFeedReader:
    """Fetches change entries for a dataset store."""

    def __init__(
        self,
        couch_ops: CouchOperations,
        logger: BackupLogger,
        style: str = "main_only",
        limit: Optional[int] = None,
    ):
        self.couch_ops = couch_ops
        self.logger = logger
        self.style = style
        self.limit = limit

    def read_changes(
        self, database: str, since: Optional[SequenceToken] = None
    ) -> List[ChangeEntry]:
        """
        Return the changes of database recorded after since.

        Args:
            database: Source store name
            since: Checkpoint sequence; None starts from the initial sequence

        Raises:
            ChangeFeedError: If the feed cannot be fetched or parsed
        """
        since = INITIAL_SEQUENCE if since is None else since
        try:
            body = self.couch_ops.get_changes(
                database, since=since, style=self.style, limit=self.limit
            )
        except StoreRequestError as e:
            raise ChangeFeedError(
                f"Failed to read changes of {database} since {since}: {e}"
            ) from e

        results = body.get("results") if isinstance(body, dict) else None
        if not isinstance(results, list):
            raise ChangeFeedError(
                f"Malformed change feed for {database}: missing results list"
            )

        entries = []
        for change in results:
            try:
                entries.append(
                    ChangeEntry(
                        doc_id=change["id"],
                        seq=change["seq"],
                        revisions=[rev["rev"] for rev in change.get("changes", [])],
                        deleted=bool(change.get("deleted", False)),
                    )
                )
            except (KeyError, TypeError, ValidationError) as e:
                raise ChangeFeedError(
                    f"Malformed change in feed of {database}: {change!r}"
                ) from e

        # Clustered stores may interleave shard sequences
        entries.sort(key=lambda entry: sequence_key(entry.seq)[0])

        self.logger.debug(
            f"Read {len(entries)} changes from {database} since {since}",
            extra={"database": database},
        )
        return entries
