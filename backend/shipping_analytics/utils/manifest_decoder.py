import csv
import gzip
import io
import os
import zipfile
import zlib
from contextlib import ExitStack
from enum import Enum
from types import MappingProxyType
from typing import BinaryIO, Dict, Iterator, List, Mapping, Optional, Union

from shipping_analytics.core.errors import DecodeError, NoTabularEntry, UnsupportedFormat

TABULAR_EXTENSION = ".csv"
NULL_MARKERS = ("", "null")
# Largest value a C long holds on every platform; free-text columns can be long
MAX_FIELD_CHARS = 2**31 - 1

ManifestSource = Union[str, os.PathLike, BinaryIO]

csv.field_size_limit(MAX_FIELD_CHARS)


class ManifestFormat(str, Enum):
    PLAIN = "plain"
    GZIP = "gzip"
    ZIP = "zip"

    @classmethod
    def from_filename(cls, filename: str) -> "ManifestFormat":
        """
        Classifies an uploaded file by its extension.

        Raises:
            UnsupportedFormat: if the extension is not .csv, .gz or .zip.
        """
        extension = os.path.splitext(filename)[1].lower()
        try:
            return _EXTENSION_FORMATS[extension]
        except KeyError:
            raise UnsupportedFormat(
                f"Only CSV, GZ, and ZIP files are allowed (got '{filename}')"
            ) from None


_EXTENSION_FORMATS = {
    ".csv": ManifestFormat.PLAIN,
    ".gz": ManifestFormat.GZIP,
    ".zip": ManifestFormat.ZIP,
}

# Everything the stdlib readers raise on a corrupt or unreadable stream.
_DECODE_FAILURES = (
    OSError,
    EOFError,
    zlib.error,
    zipfile.BadZipFile,
    csv.Error,
    ValueError,
    RuntimeError,
)


def _find_tabular_entry(archive: zipfile.ZipFile) -> zipfile.ZipInfo:
    for info in archive.infolist():
        if not info.is_dir() and info.filename.lower().endswith(TABULAR_EXTENSION):
            return info
    raise NoTabularEntry(f"No {TABULAR_EXTENSION.upper().lstrip('.')} file found in ZIP")


def _open_binary(source: ManifestSource, fmt: ManifestFormat, stack: ExitStack) -> BinaryIO:
    if isinstance(source, (str, os.PathLike)):
        raw = stack.enter_context(open(source, "rb"))
    else:
        raw = source

    if fmt is ManifestFormat.GZIP:
        return stack.enter_context(gzip.GzipFile(fileobj=raw, mode="rb"))
    if fmt is ManifestFormat.ZIP:
        archive = stack.enter_context(zipfile.ZipFile(raw))
        return stack.enter_context(archive.open(_find_tabular_entry(archive)))
    return raw


def _normalize(value: str) -> Optional[str]:
    return None if value in NULL_MARKERS else value


def _to_record(fields: List[str], row: List[str]) -> Mapping[str, Optional[str]]:
    record: Dict[str, Optional[str]] = {}
    for index, value in enumerate(row):
        key = fields[index] if index < len(fields) else f"_{index}"
        record[key] = _normalize(value)
    for key in fields[len(row):]:
        record.setdefault(key, None)
    return MappingProxyType(record)


def decode_records(
    source: ManifestSource, fmt: Union[ManifestFormat, str]
) -> Iterator[Mapping[str, Optional[str]]]:
    """
    Lazily decodes a shipment manifest into read-only records.

    The first row is the header; every header name is trimmed. Empty strings and
    the literal text "null" become None. Each call reads the source again from
    wherever it currently stands, so a file object can only be decoded once.

    Args:
        source: A filesystem path or a binary file object. File objects are left
            open for the caller to close.
        fmt: plain, gzip or zip.

    Yields:
        One mapping per data row, keyed by header name.

    Raises:
        NoTabularEntry: if a zip archive contains no .csv entry.
        DecodeError: if the stream is corrupt or unreadable at any point.
    """
    fmt = ManifestFormat(fmt)
    with ExitStack() as stack:
        try:
            binary = _open_binary(source, fmt, stack)
            text = io.TextIOWrapper(binary, encoding="utf-8-sig", newline="")
            stack.callback(text.detach)

            reader = csv.reader(text)
            header = next(reader, None)
            if header is None:
                return
            fields = [name.strip() for name in header]

            for row in reader:
                if not row:
                    continue
                yield _to_record(fields, row)
        except DecodeError:
            raise
        except _DECODE_FAILURES as e:
            raise DecodeError(f"Error decoding {fmt.value} manifest: {str(e)}") from e
