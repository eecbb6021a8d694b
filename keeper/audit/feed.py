"""Read surface for dashboards polling the keeper's decision log."""

from dataclasses import dataclass, field

from keeper.audit.models import AuditRecord
from keeper.audit.publisher import AuditLogPublisher
from keeper.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class FeedSnapshot:
    """What a dashboard renders: newest decisions plus connection status."""

    logs: list[AuditRecord] = field(default_factory=list)
    is_connected: bool = False
    error: str | None = None


class KeeperFeed:
    """Polls the audit log for a keeper's decisions.

    ``poll`` never raises; failures are reported through the snapshot.
    """

    def __init__(
        self,
        publisher: AuditLogPublisher,
        keeper_address: str | None,
        limit: int = 50,
    ):
        self.publisher = publisher
        self.keeper_address = keeper_address
        self.limit = limit
        self.snapshot = FeedSnapshot()

    def poll(self) -> FeedSnapshot:
        if not self.keeper_address:
            logger.warning("keeper_address_not_configured")
            self.snapshot = FeedSnapshot(error="Keeper address not configured")
            return self.snapshot

        try:
            logs = self.publisher.recent_decisions(self.keeper_address, self.limit)
        except Exception as e:
            logger.error("keeper_feed_fetch_failed", error=str(e))
            self.snapshot = FeedSnapshot(
                logs=self.snapshot.logs,
                is_connected=False,
                error=str(e) or "Failed to fetch logs",
            )
            return self.snapshot

        if not logs:
            logger.debug("no_keeper_logs_yet")
        self.snapshot = FeedSnapshot(logs=logs, is_connected=True)
        return self.snapshot
