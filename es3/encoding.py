import gzip
import json
import logging
import math
import zlib

from typing import Any
from typing import Dict
from typing import List


from es3.errors import DecompressionError
from es3.errors import JsonParseError


logger = logging.getLogger(__name__)


GZIP_MAGIC = b"\x1f\x8b"

OPEN_BRACE = ord("{")
CLOSE_BRACE = ord("}")
QUOTE = ord('"')
BACKSLASH = ord("\\")

EMPTY_OBJECT = b"{}"

TYPE_KEY = "__type"
VALUE_KEY = "value"
DICTIONARY_MARKER = "Dictionary"


class BraceScanner:
    """ Tracks brace depth over a byte stream while skipping string contents

    Braces only count outside of string literals. A backslash inside a
    string escapes the next byte. A closing brace at depth zero is ignored,
    so stray bytes ahead of the object can't close it early. State carries
    over between calls to feed().

    """

    def __init__(self) -> None:
        self.depth = 0
        self.started = False
        self.in_string = False
        self.escaped = False

    def feed(self, chunk: bytes) -> int:
        """Returns the index just past the brace closing the object, or -1."""

        for i, byte in enumerate(chunk):
            if self.in_string:
                if self.escaped:
                    self.escaped = False
                elif byte == BACKSLASH:
                    self.escaped = True
                elif byte == QUOTE:
                    self.in_string = False

                continue

            if byte == QUOTE:
                self.in_string = True

            elif byte == OPEN_BRACE:
                self.depth += 1
                self.started = True

            elif byte == CLOSE_BRACE and self.depth > 0:
                self.depth -= 1

                if self.depth == 0:
                    return i + 1

        return -1


def maybe_decompress(data: bytes) -> bytes:
    if data[:2] != GZIP_MAGIC:
        return data

    logger.debug("payload is gzip compressed (%d bytes)", len(data))

    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise DecompressionError(f"error decompressing data: {e}") from e


def locate_json(data: bytes) -> bytes:
    """ Skip any binary header in front of the first '{'

    Everything after the object is kept, clean_json() is what trims it.

    """

    start = data.find(b"{")

    if start == -1:
        return data

    if start:
        logger.debug("skipping %d header bytes before JSON", start)

    return data[start:]


def clean_json(data: bytes) -> bytes:
    """ Keep only the first balanced top-level object, line by line

    Lines are trimmed and blank ones dropped. Accumulation starts with the
    line holding the first '{' and stops after the line that closes it.
    Trailing commas directly in front of '}' or ']' are removed. Returns
    '{}' when no object was found at all.

    """

    scanner = BraceScanner()
    lines: List[bytes] = []

    for line in data.replace(b"\r\n", b"\n").split(b"\n"):
        line = line.strip()

        if not line:
            continue

        end = scanner.feed(line)

        if scanner.started:
            lines.append(line)

        if end != -1:
            break

    if not lines:
        return EMPTY_OBJECT

    cleaned = b"\n".join(lines)
    cleaned = cleaned.replace(b",}", b"}")
    cleaned = cleaned.replace(b",]", b"]")

    return cleaned.strip()


def extract_first_object(data: bytes) -> bytes:
    end = BraceScanner().feed(data)

    if end == -1:
        return data

    return data[:end]


def _reject_constant(name: str) -> None:
    raise ValueError(f"{name} is not valid JSON")


def _parse_finite_float(token: str) -> float:
    number = float(token)

    if not math.isfinite(number):
        raise ValueError(f"number {token} is out of range")

    return number


def _replace_lone_surrogates(text: str) -> str:
    """Unpaired surrogate escapes become U+FFFD so the text encodes."""

    return text.encode("utf-16-le", "surrogatepass").decode(
        "utf-16-le", "replace"
    )


def parse_object(data: bytes) -> Dict[str, Any]:
    result = json.loads(
        data,
        parse_constant=_reject_constant,
        parse_float=_parse_finite_float,
    )

    if not isinstance(result, dict):
        raise ValueError(
            f"expected a JSON object, got {type(result).__name__}"
        )

    return result


def normalize_value(value: Any, keep_unknown_wrappers: bool = False) -> Any:
    """ Strip .NET type wrappers from a parsed JSON value

    A wrapper is an object with a string '__type' key. When it carries a
    'value' that value replaces the wrapper. Dictionary wrappers whose
    value is an object become that object. Wrappers without a value become
    None unless keep_unknown_wrappers is set, in which case they stay as
    plain objects.

    """

    match value:
        case {"__type": str(type_name), **members}:
            if VALUE_KEY in members:
                payload = members[VALUE_KEY]

                is_dictionary = DICTIONARY_MARKER in type_name

                if is_dictionary and isinstance(payload, dict):
                    return {
                        key: normalize_value(item, keep_unknown_wrappers)
                        for key, item in payload.items()
                    }

                return normalize_value(payload, keep_unknown_wrappers)

            if not keep_unknown_wrappers:
                return None

            return {
                key: normalize_value(item, keep_unknown_wrappers)
                for key, item in value.items()
            }

        case dict():
            return {
                key: normalize_value(item, keep_unknown_wrappers)
                for key, item in value.items()
            }

        case list():
            return [
                normalize_value(item, keep_unknown_wrappers)
                for item in value
            ]

        case _:
            return value


def convert_dotnet_json(
    data: bytes,
    keep_unknown_wrappers: bool = False,
) -> bytes:
    """ Converts .NET serialized JSON into plain, compact JSON

    The data is cleaned first. If it still doesn't parse, the first
    complete object is cut out of it and parsed once more before giving up.

    """

    cleaned = clean_json(data)

    try:
        document = parse_object(cleaned)
    except ValueError as e:
        logger.debug("direct parse failed (%s), extracting first object", e)

        try:
            document = parse_object(extract_first_object(cleaned))
        except ValueError as e:
            raise JsonParseError(f"error parsing JSON: {e}") from e

    converted = {
        key: normalize_value(value, keep_unknown_wrappers)
        for key, value in document.items()
    }

    text = json.dumps(
        converted,
        ensure_ascii=False,
        separators=(",", ":"),
    )

    return _replace_lone_surrogates(text).encode("utf-8")
