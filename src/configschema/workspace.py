"""Configuration Workspace

Owns the pair of schemas used while editing a firmware configuration:

    basic     -- Configuration.h on its own
    advanced  -- Configuration_adv.h, preceded by a read-only prefix made of
                 the directives of Configuration.h and the conditionals
                 header, so its requirements can see those options

The prefix is a snapshot taken when the workspace is built. Edits to the
basic schema are mirrored onto the prefix when the records line up;
otherwise the advanced schema is marked stale until `reload()`.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .config import SchemaConfig, DEFAULT_CONFIG
from .edits import OptionEdit, SchemaError
from .preprocessor import stripped_config
from .schema import ConfigSchema

logger = logging.getLogger(__name__)


CONFIG_FILE = 'Configuration.h'
ADV_CONFIG_FILE = 'Configuration_adv.h'
CONDITIONALS_FILE = Path('src', 'inc', 'Conditionals_LCD.h')
SPLIT_CONDITIONALS_FILES = [
    Path('src', 'inc', 'Conditionals-1-axes.h'),
    Path('src', 'inc', 'Conditionals-2-LCD.h'),
    Path('src', 'inc', 'Conditionals-3-etc.h'),
]


def advanced_document(config_text: str, conditionals_text: str,
                      adv_text: str) -> Dict[str, Any]:
    """Build the combined advanced document and its line offset."""
    config_part, config_lines = stripped_config(config_text)
    cond_part, cond_lines = stripped_config(conditionals_text)
    # The blank line ends a trailing comment left open by the last directive
    text = ('// @section _\n' + config_part + cond_part
            + '\n// @section none\n' + adv_text)
    return {'text': text, 'line_offset': -(config_lines + cond_lines + 3)}


class ConfigWorkspace:
    """Explicit owner of the basic and advanced schemas."""

    def __init__(self, config_text: str, adv_text: Optional[str] = None,
                 conditionals_text: str = '', config: Optional[SchemaConfig] = None):
        self.config = config or DEFAULT_CONFIG
        self.config_text = config_text
        self.adv_text = adv_text
        self.conditionals_text = conditionals_text
        self.basic: ConfigSchema = ConfigSchema(self.config)
        self.advanced: Optional[ConfigSchema] = None
        self.advanced_stale = False
        self.reload()

    @classmethod
    def from_marlin_dir(cls, path: Union[str, Path],
                        config: Optional[SchemaConfig] = None) -> 'ConfigWorkspace':
        """Read the configuration files from a Marlin source tree."""
        root = Path(path)
        config_text = (root / CONFIG_FILE).read_text(encoding='utf-8')

        adv_path = root / ADV_CONFIG_FILE
        adv_text = adv_path.read_text(encoding='utf-8') if adv_path.exists() else None

        cond_path = root / CONDITIONALS_FILE
        if cond_path.exists():
            conditionals = cond_path.read_text(encoding='utf-8')
        else:
            conditionals = ''.join(
                (root / p).read_text(encoding='utf-8')
                for p in SPLIT_CONDITIONALS_FILES if (root / p).exists()
            )
        return cls(config_text, adv_text, conditionals, config)

    def reload(self, config_text: Optional[str] = None, adv_text: Optional[str] = None,
               conditionals_text: Optional[str] = None) -> None:
        """Rebuild both schemas from the authoritative text."""
        if config_text is not None:
            self.config_text = config_text
        if adv_text is not None:
            self.adv_text = adv_text
        if conditionals_text is not None:
            self.conditionals_text = conditionals_text

        self.basic = ConfigSchema.from_text(self.config_text, config=self.config)
        if self.adv_text is not None:
            doc = advanced_document(self.config_text, self.conditionals_text, self.adv_text)
            self.advanced = ConfigSchema.from_text(doc['text'], doc['line_offset'], self.config)
        else:
            self.advanced = None
        self.advanced_stale = False
        logger.debug("Workspace reloaded")

    def schema_for(self, filename: str) -> ConfigSchema:
        """The schema that edits of *filename* apply to."""
        name = Path(filename).name
        if name == ADV_CONFIG_FILE:
            if self.advanced is None:
                raise SchemaError(f"No {ADV_CONFIG_FILE} loaded")
            return self.advanced
        return self.basic

    def apply_edits(self, edits: List[OptionEdit],
                    filename: str = CONFIG_FILE) -> Dict[int, bool]:
        """Apply a batch to one file's schema, mirroring basic edits forward."""
        schema = self.schema_for(filename)
        if schema is self.advanced:
            for edit in edits:
                record = schema.get_record(edit.serial_id)
                if record is not None and not record.writable:
                    raise SchemaError(f"{record.name} is not in {ADV_CONFIG_FILE}",
                                      edit.serial_id)
        delta = schema.apply_edits(edits)
        if schema is self.basic:
            self._mirror(edits)
        return delta

    def apply_edit(self, serial_id: int, changes: Dict[str, Any],
                   filename: str = CONFIG_FILE) -> Dict[int, bool]:
        return self.apply_edits([OptionEdit(serial_id, changes)], filename)

    def _mirror(self, edits: List[OptionEdit]) -> None:
        if self.advanced is None or self.advanced_stale:
            return
        mirrored = []
        for edit in edits:
            source = self.basic.get_record(edit.serial_id)
            target = self.advanced.get_record(edit.serial_id)
            if source is None or target is None or target.name != source.name \
                    or target.writable:
                self.advanced_stale = True
                logger.debug(f"Advanced schema is stale after editing #{edit.serial_id}")
                return
            mirrored.append(edit)
        self.advanced.apply_edits(mirrored)
