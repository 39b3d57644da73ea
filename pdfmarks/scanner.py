"""
PDF Text Scanner
================
Small, bounded scanners over the textual form of PDF objects.

No structural PDF decoding happens here. Each scanner works on a slice of
text, always terminates, and never reads outside the slice it was given:

    - printable_stream:      lossy "strings"-style flattening of raw bytes
    - find_dict_start:       innermost "<<" still open at a position, string-aware
    - find_dict_end:         the ">>" closing a dictionary, string-aware
    - read_literal_string:   balanced-parenthesis reader for "(...)"
    - decode_pdf_string:     escape / hex / UTF-16 decoding of string bodies
    - iter_array_items:      tokenizer for the items of a "[...]" array
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, Optional, Union

# Runs of printable ASCII (plus tab), at least 4 bytes long, like strings(1)
PRINTABLE_RUN_PATTERN = re.compile(rb"[\x20-\x7e\t]{4,}")

NUMBER_PATTERN = re.compile(r"[+-]?\d*\.\d+|[+-]?\d+")

_ESCAPES = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "b": "\b",
    "f": "\f",
    "(": "(",
    ")": ")",
    "\\": "\\",
}


@dataclass(frozen=True)
class IndirectRef:
    """An indirect object reference, "N G R"."""
    number: int
    generation: int = 0


ArrayItem = Union[int, float, str, IndirectRef]


def printable_stream(data: bytes) -> str:
    """Flatten raw PDF bytes into one space-joined printable text stream."""
    if not data:
        return ""
    return " ".join(
        run.decode("ascii") for run in PRINTABLE_RUN_PATTERN.findall(data)
    )


def is_escaped(text: str, index: int) -> bool:
    """True when the character at index is preceded by a backslash."""
    return index > 0 and text[index - 1] == "\\"


def find_dict_start(text: str, end: int, start: int = 0) -> int:
    """
    Find the "<<" opening the dictionary that encloses position `end`.

    Scans forward from `start` to `end`, skipping literal strings, and
    returns the innermost "<<" still open at `end`. When no opener is open
    there, or a string runs past `end`, falls back to the nearest "<<"
    before `end`. Returns -1 when there is none.
    """
    end = min(end, len(text))
    open_at: list[int] = []
    i = start
    while i < end:
        if text[i] == "(":
            close = _literal_string_close(text, i + 1, end)
            if close == -1:
                open_at.clear()
                break
            i = close + 1
            continue
        pair = text[i:i + 2]
        if pair == "<<":
            open_at.append(i)
            i += 2
            continue
        if pair == ">>":
            if open_at:
                open_at.pop()
            i += 2
            continue
        i += 1

    if open_at:
        return open_at[-1]
    return text.rfind("<<", start, end)


def find_dict_end(text: str, begin: int, limit: Optional[int] = None) -> int:
    """
    Find the ">>" closing the dictionary whose body starts at `begin`.

    Literal strings are skipped so that "<<" or ">>" inside them do not
    count. Returns the index just past the closing ">>", or -1 when the
    dictionary is not closed before `limit`.
    """
    limit = len(text) if limit is None else min(limit, len(text))
    depth = 0
    i = begin
    while i < limit:
        ch = text[i]
        if ch == "(":
            close = _literal_string_close(text, i + 1, limit)
            if close == -1:
                return -1
            i = close + 1
            continue
        pair = text[i:i + 2]
        if pair == "<<":
            depth += 1
            i += 2
            continue
        if pair == ">>":
            if depth == 0:
                return i + 2
            depth -= 1
            i += 2
            continue
        i += 1
    return -1


def _literal_string_close(text: str, begin: int, limit: int) -> int:
    """Index of the ")" balancing an already-consumed "(", or -1."""
    depth = 1
    for j in range(begin, limit):
        ch = text[j]
        if ch == "(" and not is_escaped(text, j):
            depth += 1
        elif ch == ")" and not is_escaped(text, j):
            depth -= 1
            if depth == 0:
                return j
    return -1


def read_literal_string(
    text: str, begin: int, limit: Optional[int] = None
) -> Optional[tuple[str, int]]:
    """
    Read the body of a literal string whose "(" sits just before `begin`.

    Nesting depth goes up on every unescaped "(" and down on every
    unescaped ")"; the string ends when it reaches zero. Returns the raw
    body and the index just past the closing ")", or None when the string
    is not closed before `limit`.
    """
    limit = len(text) if limit is None else min(limit, len(text))
    close = _literal_string_close(text, begin, limit)
    if close == -1:
        return None
    return text[begin:close], close + 1


def read_hex_string(
    text: str, begin: int, limit: Optional[int] = None
) -> Optional[tuple[str, int]]:
    """Read a "<...>" hex string whose "<" sits just before `begin`."""
    limit = len(text) if limit is None else min(limit, len(text))
    close = text.find(">", begin, limit)
    if close == -1:
        return None
    return text[begin:close], close + 1


def unescape_literal(raw: str) -> str:
    """Resolve backslash escapes (including octal) in a literal string body."""
    out: list[str] = []
    i = 0
    n = len(raw)
    while i < n:
        ch = raw[i]
        if ch != "\\" or i + 1 >= n:
            out.append(ch)
            i += 1
            continue
        nxt = raw[i + 1]
        if nxt in _ESCAPES:
            out.append(_ESCAPES[nxt])
            i += 2
        elif nxt in "01234567":
            j = i + 1
            while j < n and j < i + 4 and raw[j] in "01234567":
                j += 1
            out.append(chr(int(raw[i + 1:j], 8) & 0xFF))
            i = j
        elif nxt in "\r\n":
            # Line continuation
            i += 2
            if nxt == "\r" and i < n and raw[i] == "\n":
                i += 1
        else:
            out.append(nxt)
            i += 2
    return "".join(out)


def decode_pdf_string(raw: str, is_hex: bool = False) -> str:
    """
    Decode a PDF string body to text.

    Hex bodies are converted to bytes first; byte strings starting with a
    UTF-16BE byte order mark are decoded as such, anything else as Latin-1.
    """
    if is_hex:
        digits = re.sub(r"[^0-9A-Fa-f]", "", raw)
        if len(digits) % 2:
            digits += "0"
        data = bytes.fromhex(digits)
    else:
        data = unescape_literal(raw).encode("latin-1", errors="replace")

    if data.startswith(b"\xfe\xff"):
        return data[2:].decode("utf-16-be", errors="replace")
    return data.decode("latin-1")


def read_string_value(text: str, key: str) -> Optional[str]:
    """
    Read the string value of /`key` in a dictionary text.

    Handles both literal "(...)" and hex "<...>" forms. Returns None when
    the key is absent or its string is not terminated.
    """
    match = re.search(r"/" + re.escape(key) + r"(?![A-Za-z0-9])\s*([(<])", text)
    if not match:
        return None
    begin = match.end()
    if match.group(1) == "(":
        read = read_literal_string(text, begin)
        if read is None:
            return None
        return decode_pdf_string(read[0])
    if text[begin:begin + 1] == "<":
        # "<<" is a dictionary, not a string
        return None
    read = read_hex_string(text, begin)
    if read is None:
        return None
    return decode_pdf_string(read[0], is_hex=True)


def find_array(text: str, key: str) -> Optional[str]:
    """Return the body of the "[...]" array stored under /`key`, or None."""
    match = re.search(r"/" + re.escape(key) + r"(?![A-Za-z0-9])\s*\[", text)
    if not match:
        return None
    begin = match.end()
    depth = 1
    i = begin
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "(":
            close = _literal_string_close(text, i + 1, n)
            if close == -1:
                return None
            i = close + 1
            continue
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return text[begin:i]
        i += 1
    return None


def find_dict_value(text: str, key: str) -> Optional[str]:
    """Return the "<<...>>" dictionary stored inline under /`key`, or None."""
    match = re.search(r"/" + re.escape(key) + r"(?![A-Za-z0-9])\s*<<", text)
    if not match:
        return None
    start = match.end() - 2
    end = find_dict_end(text, match.end())
    if end == -1:
        return None
    return text[start:end]


def find_ref_value(text: str, key: str) -> Optional[IndirectRef]:
    """Return the indirect reference stored under /`key`, or None."""
    match = re.search(
        r"/" + re.escape(key) + r"(?![A-Za-z0-9])\s*(\d+)\s+(\d+)\s+R\b", text
    )
    if not match:
        return None
    return IndirectRef(int(match.group(1)), int(match.group(2)))


def iter_array_items(body: str) -> Iterator[Union[ArrayItem, dict]]:
    """
    Tokenize the body of a PDF array.

    Yields ints/floats, IndirectRef for "N G R" triples, dictionaries as
    {"raw": "<<...>>"} and strings / names as text. Unterminated
    constructs end the iteration.
    """
    i = 0
    n = len(body)
    pending: list[int] = []

    def flush():
        yield from pending
        pending.clear()

    while i < n:
        ch = body[i]
        if ch.isspace():
            i += 1
            continue

        if body.startswith("<<", i):
            yield from flush()
            end = find_dict_end(body, i + 2)
            if end == -1:
                return
            yield {"raw": body[i:end]}
            i = end
            continue

        if ch == "(":
            yield from flush()
            read = read_literal_string(body, i + 1)
            if read is None:
                return
            yield decode_pdf_string(read[0])
            i = read[1]
            continue

        if ch == "<":
            yield from flush()
            read = read_hex_string(body, i + 1)
            if read is None:
                return
            yield decode_pdf_string(read[0], is_hex=True)
            i = read[1]
            continue

        if ch == "R" and len(pending) >= 2 and (
            i + 1 >= n or not body[i + 1].isalnum()
        ):
            generation = pending.pop()
            number = pending.pop()
            yield from flush()
            yield IndirectRef(number, generation)
            i += 1
            continue

        match = NUMBER_PATTERN.match(body, i)
        if match:
            token = match.group(0)
            if "." in token:
                yield from flush()
                yield float(token)
            else:
                # Integers may turn out to be the start of an "N G R" triple
                pending.append(int(token))
                if len(pending) > 2:
                    yield pending.pop(0)
            i = match.end()
            continue

        # Names, keywords and anything else: one whitespace-delimited token
        yield from flush()
        j = i + 1
        while j < n and not body[j].isspace() and body[j] not in "/[]<>()":
            j += 1
        yield body[i:j]
        i = j

    yield from flush()
