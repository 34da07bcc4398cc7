"""Hearth Infra Eventsourcing -- event store, codec, change feed and projections."""

from hearth.infra.eventsourcing.change_feed import (
    BatchResult,
    ChangeFeed,
    ChangeFeedRunner,
    Delivery,
)
from hearth.infra.eventsourcing.codec import EventCodec, parse_topic
from hearth.infra.eventsourcing.event_store import (
    AppendResult,
    EventStore,
    EventStoreFactory,
    get_event_store,
)
from hearth.infra.eventsourcing.projections import BaseProjection, ProjectionRebuilder
from hearth.infra.eventsourcing.retry import transient_retrying, version_conflict_retrying
from hearth.infra.eventsourcing.settings import (
    ChangeFeedSettings,
    CommandRetrySettings,
    EventSourcingSettings,
    ReplaySettings,
    SnapshotSettings,
    get_change_feed_settings,
    get_command_retry_settings,
    get_replay_settings,
    get_snapshot_settings,
)

__all__ = [
    "AppendResult",
    "BaseProjection",
    "BatchResult",
    "ChangeFeed",
    "ChangeFeedRunner",
    "ChangeFeedSettings",
    "CommandRetrySettings",
    "Delivery",
    "EventCodec",
    "EventSourcingSettings",
    "EventStore",
    "EventStoreFactory",
    "ProjectionRebuilder",
    "ReplaySettings",
    "SnapshotSettings",
    "get_change_feed_settings",
    "get_command_retry_settings",
    "get_event_store",
    "get_replay_settings",
    "get_snapshot_settings",
    "parse_topic",
    "transient_retrying",
    "version_conflict_retrying",
]
