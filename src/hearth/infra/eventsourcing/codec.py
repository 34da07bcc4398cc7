"""Serialization of domain events to and from stored records.

Events are stored through the eventsourcing library's recorders as
``StoredEvent(originator_id, originator_version, topic, state)``. The codec
owns the mapping between event classes and topics, the JSON encoding of the
state, and the upcasting of older schemas.

Topic format:
    ``"<kind>.v<schema_version>"``, e.g. ``"task_created.v2"``. Topics are
    stable names, not Python import paths, so modules can move freely.

Decoding rules:
    - Known kind, schema at or below the class's version: upcast step by
      step, then instantiate the class.
    - Unknown kind, or a schema newer than this code knows: decode to
      :class:`~hearth.foundation.domain.events.UnknownEvent`.
    - Undecodable state, missing envelope fields, a payload that fails the
      event class's checks, or a missing upcaster step:
      :class:`~hearth.foundation.domain.exceptions.MalformedEventError`.

Example:
    >>> codec = EventCodec([TaskCreated, TaskCompleted])
    >>> @codec.upcaster("task_created", from_version=1)
    ... def add_tags(data):
    ...     return {**data, "tags": []}
    >>> stored = codec.encode(event)
    >>> codec.decode(stored) == event
    True
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Any

from eventsourcing.persistence import DatetimeAsISO, JSONTranscoder, StoredEvent, UUIDAsHex

from hearth.foundation.domain.events import BaseEvent, UnknownEvent
from hearth.foundation.domain.exceptions import MalformedEventError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    Upcaster = Callable[[dict[str, Any]], dict[str, Any]]

logger = logging.getLogger(__name__)

# Envelope keys present in every stored state dict.
ENVELOPE_FIELDS: tuple[str, ...] = (
    "event_id",
    "tenant_id",
    "task_id",
    "user_id",
    "timestamp",
    "correlation_id",
    "causation_id",
)

_REQUIRED_ENVELOPE_FIELDS: frozenset[str] = frozenset(
    {"event_id", "tenant_id", "task_id", "user_id", "timestamp"}
)


def parse_topic(topic: str) -> tuple[str, int] | None:
    """Split a topic into ``(kind, schema_version)``.

    Returns:
        The pair, or None if the topic does not follow the format.
    """
    kind, sep, version = topic.rpartition(".v")
    if not sep or not kind or not version.isdigit():
        return None
    return kind, int(version)


class EventCodec:
    """Encodes events to ``StoredEvent`` records and decodes them back.

    Args:
        event_classes: Event classes to register. Each class needs a unique
            ``kind``.
    """

    def __init__(self, event_classes: Iterable[type[BaseEvent]] = ()) -> None:
        self._classes: dict[str, type[BaseEvent]] = {}
        self._upcasters: dict[tuple[str, int], Upcaster] = {}
        self._transcoder = JSONTranscoder()
        self._transcoder.register(UUIDAsHex())
        self._transcoder.register(DatetimeAsISO())
        for event_class in event_classes:
            self.register(event_class)

    def register(self, event_class: type[BaseEvent]) -> None:
        """Register an event class under its ``kind``.

        Raises:
            ValueError: If another class already claimed the kind.
        """
        existing = self._classes.get(event_class.kind)
        if existing is not None and existing is not event_class:
            msg = f"Event kind {event_class.kind!r} already registered to {existing.__name__}"
            raise ValueError(msg)
        self._classes[event_class.kind] = event_class

    def upcaster(self, kind: str, *, from_version: int) -> Callable[[Upcaster], Upcaster]:
        """Decorator registering a function lifting ``kind`` from ``from_version`` by one."""

        def decorator(func: Upcaster) -> Upcaster:
            self._upcasters[(kind, from_version)] = func
            return func

        return decorator

    def add_upcaster(self, kind: str, from_version: int, func: Upcaster) -> None:
        self._upcasters[(kind, from_version)] = func

    @property
    def kinds(self) -> frozenset[str]:
        return frozenset(self._classes)

    def topic_for(self, event: BaseEvent) -> str:
        """Topic under which ``event`` is stored.

        Raises:
            ValidationError: If the event's kind is not registered.
        """
        registered = self._classes.get(event.kind)
        if registered is None or not isinstance(event, registered):
            raise ValidationError(
                "events",
                f"event kind {event.kind!r} is not registered with the codec",
                event_type=type(event).__name__,
            )
        return event.get_topic()

    def encode(self, event: BaseEvent) -> StoredEvent:
        """Encode a domain event.

        Raises:
            ValidationError: If the event kind is unknown or the payload
                cannot be serialized.
        """
        topic = self.topic_for(event)
        data: dict[str, Any] = {
            "event_id": event.event_id,
            "tenant_id": event.tenant_id,
            "task_id": event.task_id,
            "user_id": event.user_id,
            "timestamp": event.timestamp,
            "correlation_id": event.correlation_id,
            "causation_id": event.causation_id,
            **event.payload(),
        }
        try:
            state = self._transcoder.encode(data)
        except TypeError as exc:
            raise ValidationError(
                "events",
                f"payload of {event.kind} is not serializable: {exc}",
                event_id=event.event_id,
            ) from exc
        return StoredEvent(
            originator_id=event.originator_id,
            originator_version=event.originator_version,
            topic=topic,
            state=state,
        )

    def decode(self, stored: StoredEvent) -> BaseEvent:
        """Decode a stored record (or notification) into a domain event.

        Raises:
            MalformedEventError: If the record cannot be turned into an event.
        """
        data = self._decode_state(stored)
        parsed = parse_topic(stored.topic)
        event_class = self._classes.get(parsed[0]) if parsed else None
        if parsed is None or event_class is None or parsed[1] > event_class.schema_version:
            return self._unknown(stored, data)

        kind, version = parsed
        while version < event_class.schema_version:
            upcast = self._upcasters.get((kind, version))
            if upcast is None:
                raise MalformedEventError(
                    f"No upcaster for {kind} from schema v{version}",
                    {"topic": stored.topic, "originator_id": str(stored.originator_id)},
                )
            data = upcast(dict(data))
            version += 1

        return self._instantiate(event_class, stored, data)

    def _decode_state(self, stored: StoredEvent) -> dict[str, Any]:
        try:
            data = self._transcoder.decode(stored.state)
        except (ValueError, UnicodeDecodeError, KeyError) as exc:
            raise MalformedEventError(
                f"Undecodable event state: {exc}",
                {"topic": stored.topic, "originator_id": str(stored.originator_id)},
            ) from exc
        if not isinstance(data, dict):
            raise MalformedEventError(
                "Event state is not an object",
                {"topic": stored.topic, "originator_id": str(stored.originator_id)},
            )
        missing = _REQUIRED_ENVELOPE_FIELDS - data.keys()
        if missing:
            raise MalformedEventError(
                f"Event state lacks {', '.join(sorted(missing))}",
                {"topic": stored.topic, "originator_id": str(stored.originator_id)},
            )
        return data

    def _instantiate(
        self,
        event_class: type[BaseEvent],
        stored: StoredEvent,
        data: dict[str, Any],
    ) -> BaseEvent:
        accepted = {f.name for f in dataclasses.fields(event_class) if f.init}
        kwargs = {key: value for key, value in data.items() if key in accepted}
        try:
            return event_class(
                originator_id=stored.originator_id,
                originator_version=stored.originator_version,
                **kwargs,
            )
        except (TypeError, ValueError, ValidationError) as exc:
            raise MalformedEventError(
                f"Cannot build {event_class.__name__}: {exc}",
                {
                    "topic": stored.topic,
                    "originator_id": str(stored.originator_id),
                    "originator_version": stored.originator_version,
                },
            ) from exc

    def _unknown(self, stored: StoredEvent, data: dict[str, Any]) -> UnknownEvent:
        logger.debug(
            "event_codec_unknown_topic",
            extra={"topic": stored.topic, "originator_id": str(stored.originator_id)},
        )
        envelope = {key: data.get(key) for key in ENVELOPE_FIELDS}
        rest = {key: value for key, value in data.items() if key not in ENVELOPE_FIELDS}
        try:
            return UnknownEvent(
                originator_id=stored.originator_id,
                originator_version=stored.originator_version,
                topic=stored.topic,
                data=rest,
                **envelope,
            )
        except (TypeError, ValueError) as exc:
            raise MalformedEventError(
                f"Cannot build placeholder for unknown topic: {exc}",
                {"topic": stored.topic, "originator_id": str(stored.originator_id)},
            ) from exc
