"""Decoding of raw PDF string objects into display text."""

import codecs

from charset_normalizer import from_bytes

from .errors import TitleDecodeError

_BOMS = (
    (codecs.BOM_UTF16_BE, "utf-16-be"),
    (codecs.BOM_UTF16_LE, "utf-16-le"),
    (codecs.BOM_UTF8, "utf-8"),
)

_LITERAL_ESCAPES = {
    ord('n'): b'\n',
    ord('r'): b'\r',
    ord('t'): b'\t',
    ord('b'): b'\b',
    ord('f'): b'\f',
    ord('('): b'(',
    ord(')'): b')',
    ord('\\'): b'\\',
}


def parse_pdf_string(token: bytes) -> bytes:
    """
    Convert a PDF string token to the bytes it denotes.

    Accepts literal syntax, ``(Chapter \\(1\\))``, and hex syntax,
    ``<FEFF0041>``. Surrounding whitespace is ignored.

    Raises:
        ValueError: If the token is not a complete PDF string.
    """
    token = token.strip()
    if token.startswith(b'<') and token.endswith(b'>'):
        digits = b''.join(token[1:-1].split())
        if len(digits) % 2:
            # A trailing odd digit is padded with 0 per the PDF rules
            digits += b'0'
        return bytes.fromhex(digits.decode('ascii'))
    if token.startswith(b'(') and token.endswith(b')'):
        return _unescape_literal(token[1:-1])
    raise ValueError(f"not a PDF string: {token[:20]!r}")


def _unescape_literal(body: bytes) -> bytes:
    out = bytearray()
    i = 0
    while i < len(body):
        c = body[i]
        if c != ord('\\'):
            out.append(c)
            i += 1
            continue
        i += 1
        if i >= len(body):
            break
        c = body[i]
        if c in _LITERAL_ESCAPES:
            out += _LITERAL_ESCAPES[c]
            i += 1
        elif ord('0') <= c <= ord('7'):
            octal = body[i:i + 3]
            n = 0
            while n < len(octal) and ord('0') <= octal[n] <= ord('7'):
                n += 1
            out.append(int(octal[:n], 8) & 0xFF)
            i += n
        elif c == ord('\r'):
            # Line continuation; swallow an optional following \n
            i += 1
            if i < len(body) and body[i] == ord('\n'):
                i += 1
        elif c == ord('\n'):
            i += 1
        else:
            # Unknown escapes keep the character and drop the backslash
            out.append(c)
            i += 1
    return bytes(out)


def find_string_value(source: bytes, key: bytes) -> bytes | None:
    """
    Return the string token that follows ``/key`` in a PDF dictionary source,
    or None if the key is missing or its value is not a string.
    """
    marker = b'/' + key
    start = 0
    while True:
        pos = source.find(marker, start)
        if pos == -1:
            return None
        end = pos + len(marker)
        # Reject /TitleFoo when looking for /Title
        if end < len(source) and (chr(source[end]).isalnum() or source[end] in b'_.-'):
            start = end
            continue
        break
    i = end
    while i < len(source) and source[i] in b' \t\r\n\f\x00':
        i += 1
    if i >= len(source):
        return None
    if source[i] == ord('<') and source[i:i + 2] != b'<<':
        close = source.find(b'>', i)
        return source[i:close + 1] if close != -1 else None
    if source[i] == ord('('):
        depth = 0
        j = i
        while j < len(source):
            c = source[j]
            if c == ord('\\'):
                j += 2
                continue
            if c == ord('('):
                depth += 1
            elif c == ord(')'):
                depth -= 1
                if depth == 0:
                    return source[i:j + 1]
            j += 1
    return None


def decode_title(raw) -> str:
    """
    Decode raw bookmark title bytes into text.

    UTF-16 and UTF-8 byte order marks are honoured. Without one the
    encoding is detected with charset_normalizer, which covers
    PDFDocEncoding/Latin-1 titles as well as legacy CJK code pages. Text
    that is already a str is returned as is.

    Raises:
        TitleDecodeError: If the bytes do not decode under the marked
            encoding, or no encoding matches them.
    """
    if isinstance(raw, str):
        return raw
    raw = bytes(raw)
    for bom, encoding in _BOMS:
        if raw.startswith(bom):
            try:
                return raw[len(bom):].decode(encoding)
            except UnicodeDecodeError as e:
                raise TitleDecodeError(f"bad {encoding} title {raw[:16]!r}: {e}") from e
    if not raw:
        return ""
    match = from_bytes(raw).best()
    if match is None:
        raise TitleDecodeError(f"cannot decode title bytes {raw[:16]!r}")
    return str(match)
