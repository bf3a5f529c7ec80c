"""Message stream record source.

Wraps any message consumer that can be iterated, such as a Kafka consumer,
and yields one deserialized payload per message. Messages are processed one
at a time; acknowledgement and offset tracking are left to the consumer.
"""

import json
import logging
from typing import Any, Callable, Iterable, Iterator, Optional

from .source_base import RecordSource, SourceError

log = logging.getLogger(__name__)


def _payload(message: Any) -> Any:
    # Consumer records expose the payload as ``.value``; plain payloads pass through.
    return getattr(message, "value", message)


class StreamSource(RecordSource):
    """Records consumed from a message stream.

    Args:
        consumer: Iterable yielding messages or raw payloads.
        name: Topic or stream name used for logging and error entries.
        deserializer: Callable turning a text payload into a record.
        max_messages: Stop after this many messages; ``None`` reads until
            the consumer is exhausted.
    """

    source_type = "stream"

    def __init__(
        self,
        consumer: Iterable[Any],
        name: str = "stream",
        deserializer: Callable[[str], Any] = json.loads,
        max_messages: Optional[int] = None,
    ):
        super().__init__(name)
        self.consumer = consumer
        self.deserializer = deserializer
        self.max_messages = max_messages

    def decode(self, message: Any) -> Any:
        """Decode one message into a record.

        Raises:
            SourceError: If the payload cannot be decoded or deserialized.
        """
        payload = _payload(message)
        if isinstance(payload, (dict, list, tuple)):
            return payload
        try:
            if isinstance(payload, (bytes, bytearray)):
                payload = payload.decode("utf-8")
            return self.deserializer(payload)
        except (UnicodeDecodeError, ValueError, TypeError) as exc:
            raise SourceError(
                f"Undecodable message on '{self.name}': {exc}"
            ) from exc

    def read(self) -> Iterator[Any]:
        count = 0
        if self.max_messages == 0:
            return
        for message in self.consumer:
            count += 1
            yield self.decode(message)
            if self.max_messages is not None and count >= self.max_messages:
                break
        log.info("Consumed %d messages from '%s'", count, self.name)
