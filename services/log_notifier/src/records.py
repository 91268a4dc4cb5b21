# services/log_notifier/src/records.py

import codecs
import json
import logging
from dataclasses import dataclass, field

READ_CHUNK_SIZE = 64 * 1024


# ———————————————————————————————
# Log record model
# ———————————————————————————————
@dataclass
class Resource:
    type: str | None = None
    labels: dict = field(default_factory=dict)


@dataclass
class LogRecord:
    """One Cloud Logging entry as exported to GCS."""
    insert_id: str | None = None
    log_name: str | None = None
    receive_timestamp: str | None = None
    resource: Resource = field(default_factory=Resource)
    text_payload: str | None = None
    json_payload: dict | None = None

    @classmethod
    def from_dict(cls, data) -> "LogRecord":
        """Build a record from a decoded entry; raises TypeError on wrong field types."""
        if not isinstance(data, dict):
            raise TypeError(f"expected a JSON object, got {type(data).__name__}")

        resource = _typed(data, 'resource', dict) or {}
        return cls(
            insert_id=_typed(data, 'insertId', str),
            log_name=_typed(data, 'logName', str),
            receive_timestamp=_typed(data, 'receiveTimestamp', str),
            resource=Resource(
                type=_typed(resource, 'type', str),
                labels=_typed(resource, 'labels', dict) or {},
            ),
            text_payload=_typed(data, 'textPayload', str),
            json_payload=_typed(data, 'jsonPayload', dict),
        )


def _typed(data: dict, key: str, expected: type):
    value = data.get(key)
    if value is not None and not isinstance(value, expected):
        raise TypeError(f"field '{key}' must be {expected.__name__}, got {type(value).__name__}")
    return value


# ———————————————————————————————
# Record decoding
# ———————————————————————————————
def _read_text(stream, chunk_size: int):
    """Decode a byte stream chunk by chunk; invalid UTF-8 is replaced."""
    decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
    while True:
        chunk = stream.read(chunk_size)
        text = decoder.decode(chunk or b'', final=not chunk)
        if text:
            yield text
        if not chunk:
            return


def split_json_units(chunks):
    """
    Split text chunks of concatenated JSON values into text units.

    Objects and arrays end at their matching close bracket, strings at their
    closing quote or at a raw newline, which JSON never allows inside a
    string. Anything else runs until whitespace or the start of the next
    object, array or string. A truncated trailing unit is still yielded.
    """
    buf = []
    depth = 0
    in_string = False
    escaped = False
    bare = False

    for text in chunks:
        for ch in text:
            if bare:
                if not (ch.isspace() or ch in '{["'):
                    buf.append(ch)
                    continue
                yield ''.join(buf)
                buf, bare = [], False
                if ch.isspace():
                    continue

            if not buf:
                if ch.isspace():
                    continue
                buf.append(ch)
                if ch in '{[':
                    depth = 1
                elif ch == '"':
                    in_string = True
                else:
                    bare = True
                continue

            buf.append(ch)
            if in_string:
                if ch == '\n':
                    in_string = escaped = False
                    if depth == 0:
                        yield ''.join(buf)
                        buf = []
                elif escaped:
                    escaped = False
                elif ch == '\\':
                    escaped = True
                elif ch == '"':
                    in_string = False
                    if depth == 0:
                        yield ''.join(buf)
                        buf = []
                continue

            if ch == '"':
                in_string = True
            elif ch in '{[':
                depth += 1
            elif ch in '}]':
                depth -= 1
                if depth == 0:
                    yield ''.join(buf)
                    buf = []

    if buf:
        yield ''.join(buf)


def iter_json_units(stream, chunk_size: int = READ_CHUNK_SIZE):
    """Lazily split a byte stream of concatenated JSON values into text units."""
    return split_json_units(_read_text(stream, chunk_size))


class RecordDecoder:
    """
    Iterates the log records of an export stream.

    `records_seen` counts every decode attempt, including units that fail to
    decode, and is what the status message reports. When a unit spanning
    several lines fails, the text after its first newline is split again so
    one unbalanced line does not swallow the lines behind it.
    """

    def __init__(self, stream, chunk_size: int = READ_CHUNK_SIZE):
        self.stream = stream
        self.chunk_size = chunk_size
        self.records_seen = 0

    def __iter__(self):
        # Innermost retry first, so records keep their order in the stream.
        pending = [iter_json_units(self.stream, self.chunk_size)]
        while pending:
            unit = next(pending[-1], None)
            if unit is None:
                pending.pop()
                continue

            self.records_seen += 1
            try:
                record = LogRecord.from_dict(json.loads(unit))
            except (ValueError, TypeError) as e:
                logging.error(f"Decode failed for record #{self.records_seen}: {e}")
                _, newline, rest = unit.partition('\n')
                if newline and rest.strip():
                    pending.append(split_json_units([rest]))
                continue
            yield record


# ———————————————————————————————
# Text extraction
# ———————————————————————————————
def extract_text(record: LogRecord, buffer) -> None:
    """Append the record's text and structured payloads to the buffer, one line each."""
    if record.text_payload:
        buffer.write(record.text_payload + "\n")

    if record.json_payload is not None:
        try:
            text = json.dumps(
                record.json_payload,
                separators=(',', ':'),
                sort_keys=True,
                ensure_ascii=False,
                allow_nan=False,
            )
        except (TypeError, ValueError) as e:
            logging.error(f"Marshal jsonPayload failed for insertId {record.insert_id}: {e}")
            return
        buffer.write(text + "\n")
