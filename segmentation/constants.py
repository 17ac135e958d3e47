# Directory (under the app-data root) holding one rule file per provider
SEGMENTS_DIR_NAME = "Segments"
SEGMENTS_FILE_SUFFIX = ".segments.json"
# Administrative rule replacement is rate limited per client
RULE_WRITE_RATE_LIMIT = "30 per minute"
DEFAULT_DATA_DIR_NAME = "data"
DEFAULT_DATABASE_FILE = "segmentation.db"
