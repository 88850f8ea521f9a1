"""Push-event stream decoding."""

from geocatalogue.stream.decoder import EventStreamDecoder, LineSplitter, aiter_events, iter_events

__all__ = ["EventStreamDecoder", "LineSplitter", "aiter_events", "iter_events"]
