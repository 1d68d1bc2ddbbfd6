"""
Flowkit - Configuration Loader

Loads layered configuration files and saves edits back.
"""

import os
from pathlib import Path
from typing import List, Optional

from ..constants import CONFIG_FILENAME, CONFIG_FILE_MODE
from ..errors import ConfigNotFoundError, InvalidConfigError
from ..infra.files import ReaderWriter
from .json_parser import JSONParser
from .models import Config


def global_path() -> str:
    """Configuration file in the user's home directory."""
    return str(Path.home() / CONFIG_FILENAME)


def local_path() -> str:
    return CONFIG_FILENAME


def default_paths() -> List[str]:
    """Search order for configuration: global first, local overrides."""
    return [global_path(), local_path()]


def is_default_path(paths: List[str]) -> bool:
    return list(paths) == default_paths()


class Loader:
    """
    Loads and saves configuration through a ReaderWriter.

    Parsers are chosen by file extension; JSON is always registered.
    """

    def __init__(self, reader_writer: ReaderWriter):
        self.reader_writer = reader_writer
        self._parsers = [JSONParser()]
        self.loaded_paths: List[str] = []

    def add_parser(self, parser) -> None:
        self._parsers.append(parser)

    def _parser_for(self, path: str):
        extension = os.path.splitext(path)[1]
        for parser in self._parsers:
            if parser.supports_format(extension):
                return parser
        raise InvalidConfigError(f"configuration format not supported: {path}")

    def exists(self, path: str) -> bool:
        return self.reader_writer.exists(path)

    def load(self, paths: List[str]) -> Config:
        """
        Load configuration layers in priority order.

        Later files override same-name entries of earlier ones. Missing
        files are skipped as long as at least one exists.

        Args:
            paths: Files to load, lowest priority first.

        Returns:
            Merged and validated Config.

        Raises:
            ConfigNotFoundError: If none of the files exist.
        """
        merged: Optional[Config] = None
        self.loaded_paths = []

        for path in paths:
            if not self.exists(path):
                continue
            raw = self.reader_writer.read_file(path)
            conf = self._parser_for(path).deserialize(raw, path)
            self.loaded_paths.append(path)

            if merged is None:
                merged = conf
            else:
                merged.merge(conf)

        if merged is None:
            raise ConfigNotFoundError(list(paths))

        merged.validate()
        merged.resolve_forks()
        return merged

    def save(self, conf: Config, path: str) -> None:
        """Serialize and write configuration to one file."""
        data = self._parser_for(path).serialize(conf)
        self.reader_writer.write_file(path, data, CONFIG_FILE_MODE)

    def save_edited(self, conf: Config, paths: List[str]) -> None:
        """
        Save an edited configuration back to where it came from.

        Args:
            conf: Configuration to save.
            paths: Paths the configuration was loaded from.

        Raises:
            InvalidConfigError: If several explicit paths were given, or the
                default local file does not exist yet.
        """
        if len(paths) > 1 and not is_default_path(paths):
            raise InvalidConfigError("specifying multiple paths is not supported when updating configuration")

        if is_default_path(paths) or not paths:
            if not self.exists(local_path()):
                raise InvalidConfigError(
                    "default configuration not found, please initialize it first "
                    "or specify another configuration file"
                )
            self.save(conf, local_path())
            return

        self.save(conf, paths[0])
