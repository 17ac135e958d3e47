import json
import logging
import os
from pathlib import Path

from .constants import SEGMENTS_DIR_NAME, SEGMENTS_FILE_SUFFIX
from .errors import SegmentConfigurationError
from .locks import ReadWriteLock
from .models import SegmentProviderMatch

logger = logging.getLogger(__name__)


class SegmentRuleStore:
    """File-backed rule set for one segment provider.

    Rules live in `<data_root>/Segments/<config_key>.segments.json` as a JSON
    array. The file is read on every call; nothing is cached in memory.
    """

    def __init__(self, config_key: str, data_root, lock=None):
        if not config_key or not config_key.strip():
            raise ValueError("config_key")
        self.config_key = config_key
        self.data_root = Path(data_root)
        self._lock = lock or ReadWriteLock()

    @property
    def directory(self) -> Path:
        return self.data_root / SEGMENTS_DIR_NAME

    @property
    def path(self) -> Path:
        return self.directory / f"{self.config_key}{SEGMENTS_FILE_SUFFIX}"

    def read(self) -> list[SegmentProviderMatch]:
        """Returns the stored rules, minus entries without a usable key.

        A missing file is an empty rule set. Malformed JSON raises
        json.JSONDecodeError.
        """
        with self._lock.read_lock():
            path = self.path
            if not path.exists():
                logger.debug("No segment configuration at %s", path)
                return []
            with open(path, encoding="utf-8") as f:
                content = json.load(f)

        if not isinstance(content, list):
            raise SegmentConfigurationError(path, "expected a JSON array of rules")

        if not all(isinstance(entry, dict) for entry in content):
            raise SegmentConfigurationError(path, "every rule must be a JSON object")

        try:
            rules = [SegmentProviderMatch.from_dict(entry) for entry in content]
        except ValueError as e:
            raise SegmentConfigurationError(path, str(e)) from e
        # Entries without a key cannot produce a segment
        return [rule for rule in rules if rule.has_key]

    def write(self, rules) -> None:
        """Replaces the whole rule set with `rules`.

        The JSON is written to a temporary file next to the target and moved
        into place, so readers see either the old or the new file.
        """
        rules = list(rules)
        payload = json.dumps([rule.to_dict() for rule in rules])
        with self._lock.write_lock():
            directory = self.directory
            directory.mkdir(parents=True, exist_ok=True)
            temp_path = f"{self.path}.tmp"
            try:
                with open(temp_path, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(temp_path, self.path)
            except OSError:
                if os.path.exists(temp_path):
                    try:
                        os.remove(temp_path)
                    except OSError as e:
                        logger.warning("Failed to remove temporary file %s: %s",
                                       temp_path, e)
                raise
        logger.info("Wrote %d segment rules to %s", len(rules), self.path)
