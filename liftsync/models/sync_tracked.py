from sqlalchemy import Integer, event
from sqlalchemy.orm import Mapped, mapped_column, object_session


class SyncTracked:
    """Rows pushed by the sync orchestrator.

    ``sync_version`` goes up on every ORM update of the row. The orchestrator
    remembers the version it read and only marks the row synced if it is
    unchanged once the server acknowledges, so an edit made while the push
    was in flight stays dirty.
    """

    sync_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


@event.listens_for(SyncTracked, "before_update", propagate=True)
def _bump_sync_version(mapper, connection, target) -> None:
    session = object_session(target)
    # Rows flagged dirty only through a collection change have nothing new to push.
    if session is not None and not session.is_modified(target, include_collections=False):
        return
    target.sync_version = (target.sync_version or 0) + 1
