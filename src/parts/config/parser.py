"""Configuration parser with Pydantic validation."""

import logging
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..exceptions import ConfigError, NoConfigFileFound, UnknownPartError

logger = logging.getLogger(__name__)

POSSIBLE_CONFIG_PATHS = [
    "parts.yaml",
    ".parts.yaml",
    "parts.toml",
    ".parts.toml",
    "pyproject.toml:tool.parts",
    "Cargo.toml:metadata.parts",
]

SPLIT_PATH = ":"
SPLIT_KEYS = "."

RESERVED_KEYS = {"default"}


class PartConfig(BaseModel):
    """Declarative definition of a single part."""

    model_config = ConfigDict(extra="forbid")

    directory: str = "."
    ignore_hidden: bool = True
    use_gitignore: bool = True
    globs: List[str] = Field(default_factory=list)
    regexes: List[str] = Field(default_factory=list)
    exclude_globs: List[str] = Field(default_factory=list)
    exclude_regexes: List[str] = Field(default_factory=list)

    @field_validator("directory")
    @classmethod
    def _normalize_directory(cls, value: str) -> str:
        value = value.replace("\\", "/").strip()
        parts = [p for p in value.split("/") if p not in ("", ".")]
        if ".." in parts:
            raise ValueError(f"directory {value!r} escapes the project root")
        return "/".join(parts) or "."


class PartsConfig(BaseModel):
    """All parts declared in a config file, in declaration order."""

    source: str = ""
    default: Optional[str] = None
    parts: Dict[str, PartConfig] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_names(self) -> "PartsConfig":
        for name in self.parts:
            if not name or not name.strip():
                raise ValueError("part names must be non-empty")
        if self.default is not None and self.default not in self.parts:
            raise ValueError(f"default part {self.default!r} is not declared")
        return self

    def get(self, name: Optional[str] = None) -> PartConfig:
        """Return the named part, or the default part when ``name`` is None."""
        key = name if name is not None else self.default
        if key is None:
            raise ConfigError("no part name given and no default part declared")
        if key not in self.parts:
            raise UnknownPartError(key)
        return self.parts[key]

    def is_default(self, name: str) -> bool:
        return self.default is not None and self.default == name


class _UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that refuses duplicate mapping keys."""


def _construct_unique_mapping(loader: _UniqueKeyLoader, node: yaml.MappingNode, deep: bool = False):
    seen = set()
    for key_node, _ in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in seen:
            raise yaml.constructor.ConstructorError(
                "while constructing a mapping", node.start_mark,
                f"found duplicate key {key!r}", key_node.start_mark,
            )
        seen.add(key)
    return loader.construct_mapping(node, deep=deep)


_UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_unique_mapping
)


def split_path_and_keys(value: str) -> Tuple[str, List[str]]:
    """Split ``"<path>:<key>.<key>"`` into a path and a list of keys.

    >>> split_path_and_keys(".parts.toml")
    ('.parts.toml', [])
    >>> split_path_and_keys("Cargo.toml:metadata.parts")
    ('Cargo.toml', ['metadata', 'parts'])
    """
    path, sep, keys = value.partition(SPLIT_PATH)
    if not sep:
        return value, []
    return path, keys.split(SPLIT_KEYS)


def _read_document(path: Path) -> Any:
    try:
        if path.suffix == ".toml":
            with open(path, "rb") as f:
                return tomllib.load(f)
        with open(path, encoding="utf-8") as f:
            return yaml.load(f, Loader=_UniqueKeyLoader) or {}
    except (tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"failed to parse {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"failed to read {path}: {e}") from e


def _to_parts_config(data: Any, source: str) -> PartsConfig:
    if not isinstance(data, dict):
        raise ConfigError(f"{source} does not contain a table of parts")

    default = data.get("default")
    parts: Dict[str, Any] = {k: v for k, v in data.items() if k not in RESERVED_KEYS}

    for name, value in parts.items():
        if not isinstance(value, dict):
            raise ConfigError(f"part {name!r} in {source} must be a table", part=name)

    try:
        return PartsConfig(source=source, default=default, parts=parts)
    except ValidationError as e:
        # Point at the part that failed when pydantic tells us which one
        part = None
        for error in e.errors():
            loc = error.get("loc", ())
            if len(loc) >= 2 and loc[0] == "parts":
                part = str(loc[1])
                break
        raise ConfigError(f"invalid configuration in {source}: {e}", part=part) from e


class _KeyMissing(Exception):
    pass


def parse_config_file(path: Path, keys: Optional[List[str]] = None) -> PartsConfig:
    """Parse a config file into a :class:`PartsConfig`.

    If ``keys`` is not empty, the document is first indexed by those keys
    (e.g. ``["tool", "parts"]`` for ``pyproject.toml``).

    Args:
        path: Config file path.
        keys: Nested table keys leading to the parts table.

    Returns:
        The validated configuration.

    Raises:
        ConfigError: If the file cannot be parsed, a key is missing or the
            content does not validate.
    """
    try:
        return _parse_config_file(path, keys or [])
    except _KeyMissing as e:
        raise ConfigError(str(e)) from None


def _parse_config_file(path: Path, keys: List[str]) -> PartsConfig:
    document = _read_document(path)
    source = str(path) + (SPLIT_PATH + SPLIT_KEYS.join(keys) if keys else "")

    for key in keys:
        if not isinstance(document, dict):
            raise ConfigError(f"file {str(path)!r} does not contain (nested) tables as expected")
        if key not in document:
            raise _KeyMissing(f"file {str(path)!r} does not contain key {key!r}")
        document = document[key]

    return _to_parts_config(document, source)


def find_config_file(root: Path) -> PartsConfig:
    """Look for the first usable config file under ``root``.

    Candidates that do not exist, or lack the nested key (e.g. a
    ``pyproject.toml`` without a ``[tool.parts]`` table), are skipped.
    A candidate that exists but fails to parse or validate is an error.

    Raises:
        NoConfigFileFound: If no candidate yields a configuration.
    """
    for candidate in POSSIBLE_CONFIG_PATHS:
        name, keys = split_path_and_keys(candidate)
        path = root / name
        if not path.is_file():
            logger.debug(f"Config candidate {path} does not exist")
            continue
        try:
            config = _parse_config_file(path, keys)
        except _KeyMissing as e:
            logger.debug(f"Skipping config candidate {candidate}: {e}")
            continue
        logger.info(f"Using config file {config.source}")
        return config

    raise NoConfigFileFound(POSSIBLE_CONFIG_PATHS)


def load_config(root: Path, config_file: Optional[str] = None) -> PartsConfig:
    """Load part definitions from an explicit ``<path>[:keys]`` value or by discovery."""
    if config_file:
        name, keys = split_path_and_keys(config_file)
        path = Path(name)
        if not path.is_absolute():
            path = root / path
        if not path.is_file():
            raise ConfigError(f"user-defined config file value {config_file!r} does not exist")
        return parse_config_file(path, keys)
    return find_config_file(root)
