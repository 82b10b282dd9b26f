from __future__ import annotations

from pathlib import Path


_BOMS: list[tuple[bytes, str]] = [
    (b"\xef\xbb\xbf", "utf-8-sig"),
    (b"\xff\xfe", "utf-16-le"),
    (b"\xfe\xff", "utf-16-be"),
]


def _guess_utf16_without_bom(blob: bytes) -> str | None:
    # ASCII-heavy UTF-16 text has a zero in every other byte.
    sample = blob[:4096]
    if len(sample) < 2:
        return None
    even_nulls = sample[0::2].count(0)
    odd_nulls = sample[1::2].count(0)
    half = len(sample) // 2
    if odd_nulls > half * 0.4 and odd_nulls > even_nulls * 4:
        return "utf-16-le"
    if even_nulls > half * 0.4 and even_nulls > odd_nulls * 4:
        return "utf-16-be"
    return None


def decode_library_bytes(blob: bytes) -> tuple[str, str]:
    """Decode model library bytes; returns ``(text, encoding)``.

    Vendor libraries show up as UTF-8, UTF-8 with BOM, UTF-16 (with or without
    BOM, as written by LTspice) and occasionally Windows-1252.
    """
    for marker, encoding in _BOMS:
        if blob.startswith(marker):
            return blob[len(marker):].decode(encoding.replace("-sig", ""), errors="replace"), encoding
    utf16 = _guess_utf16_without_bom(blob)
    if utf16 is not None:
        return blob.decode(utf16, errors="replace").replace("\x00", ""), utf16
    try:
        return blob.decode("utf-8"), "utf-8"
    except UnicodeDecodeError:
        return blob.decode("cp1252", errors="replace"), "cp1252"


def read_library_text(path: str | Path) -> str:
    text, _ = decode_library_bytes(Path(path).read_bytes())
    return text
