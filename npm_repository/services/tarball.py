"""
Reading of npm package tarballs (.tgz).

Publish requests carry each tarball as a base64 string. Before a publish is
accepted the registry opens the archive and reads its package.json, so the
name and version claimed in the request body can be checked against what
the archive actually contains.
"""
from __future__ import annotations

import base64
import binascii
import io
import json
import logging
import tarfile
import zlib
from typing import Any, Dict, Union

from npm_repository.domain.errors import DecodeError, MemberNotFound, ParseError

logger = logging.getLogger(__name__)

PACKAGE_JSON = "package.json"


class TgzArchive:
    """
    A gzip-compressed tar archive.

    The archive is either base64 encoded (the form used in publish bodies)
    or a raw string holding one byte per character.
    """

    def __init__(self, data: Union[str, bytes], encoded: bool = True):
        self._data = data
        self._encoded = encoded

    def decode(self) -> bytes:
        """Obtain the archive as bytes."""
        if self._encoded:
            try:
                return base64.b64decode(self._data, validate=True)
            except (binascii.Error, ValueError) as e:
                raise DecodeError(f"Archive is not valid base64: {e}") from e

        if isinstance(self._data, bytes):
            return self._data
        try:
            return self._data.encode("latin-1")
        except UnicodeEncodeError as e:
            raise DecodeError(f"Archive contains non single-byte characters: {e}") from e

    def extract_member(self, name: str) -> bytes:
        """
        Return the content of the first file whose last path segment equals
        ``name``.

        Entries are read one at a time from the decompressed stream; entries
        that do not match are skipped without being kept in memory.
        """
        raw = self.decode()
        try:
            with tarfile.open(fileobj=io.BytesIO(raw), mode="r|gz") as tar:
                for member in tar:
                    if not member.isfile():
                        continue
                    if member.name.split("/")[-1] != name:
                        continue
                    extracted = tar.extractfile(member)
                    if extracted is None:
                        continue
                    with extracted:
                        return extracted.read()
        except (tarfile.TarError, EOFError, OSError, zlib.error) as e:
            logger.debug(f"Failed to read archive while looking for {name}: {e}")
            raise DecodeError(f"Archive is not a valid gzip/tar stream: {e}") from e

        raise MemberNotFound(name)

    def read_package_descriptor(self) -> Dict[str, Any]:
        """Read and parse package.json from the archive."""
        content = self.extract_member(PACKAGE_JSON)
        try:
            descriptor = json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ParseError(f"Invalid {PACKAGE_JSON} in archive: {e}") from e

        if not isinstance(descriptor, dict):
            raise ParseError(f"Invalid {PACKAGE_JSON} in archive: expected a JSON object")
        return descriptor
