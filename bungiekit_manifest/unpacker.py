"""
Extraction of the content database from a downloaded archive.

The world content archive holds a single SQLite file. It is copied out to a
fresh temporary file; the entry name is never used as a path, so archive
entries cannot escape the temporary directory.
"""

import logging
import os
import shutil
import tempfile
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .errors import InvalidArchive, NoContentEntryFound

logger = logging.getLogger("bungiekit.manifest.unpacker")


@dataclass
class ArchiveUnpacker:
    """
    Pulls the content database out of a world content archive.

    temp_dir: directory for the extracted file (system default if None)
    chunk_size: copy buffer size in bytes
    """

    temp_dir: Optional[Path] = None
    chunk_size: int = 1024 * 1024

    def unpack(self, archive_path: Union[str, Path]) -> Path:
        """
        Extract the content database to a new temporary file.

        The caller owns both the archive and the returned file.

        Raises:
            InvalidArchive: the file is not a readable zip archive
            NoContentEntryFound: the archive holds no file entries
        """
        archive_path = Path(archive_path)
        try:
            zf = zipfile.ZipFile(archive_path, "r")
        except zipfile.BadZipFile as e:
            raise InvalidArchive(f"{archive_path.name} is not a zip archive: {e}") from e

        with zf:
            entry = self._content_entry(zf)
            if entry is None:
                raise NoContentEntryFound(f"{archive_path.name} contains no content database")

            fd, name = tempfile.mkstemp(
                prefix="bungiekit_staging_",
                suffix=".sqlite3",
                dir=self.temp_dir,
            )
            dest = Path(name)
            try:
                with os.fdopen(fd, "wb") as dst, zf.open(entry, "r") as src:
                    shutil.copyfileobj(src, dst, self.chunk_size)
            except (zipfile.BadZipFile, zlib.error, EOFError) as e:
                dest.unlink(missing_ok=True)
                raise InvalidArchive(f"Corrupt entry {entry.filename} in {archive_path.name}: {e}") from e
            except BaseException:
                dest.unlink(missing_ok=True)
                raise

        logger.debug(f"Extracted {entry.filename} ({entry.file_size} bytes) to {dest}")
        return dest

    @staticmethod
    def _content_entry(zf: zipfile.ZipFile) -> Optional[zipfile.ZipInfo]:
        """First file entry, skipping directories and macOS resource forks."""
        for info in zf.infolist():
            if info.is_dir() or info.filename.startswith("__MACOSX/"):
                continue
            return info
        return None
