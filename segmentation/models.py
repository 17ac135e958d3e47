from dataclasses import dataclass

from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy

# Initialize SQLAlchemy ORM extension
# This will be initialized with the app in app.py using db.init_app(app)
db = SQLAlchemy()

# --- Database Models ---


class User(UserMixin, db.Model):
    """An administrator allowed to edit segment rules."""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(128), nullable=False)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'is_admin': self.is_admin,
        }


# --- Segment Models ---


def _as_text(value):
    """Coerces a JSON scalar to a string, keeping None as None."""
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _as_flag(data, field):
    """Reads a boolean field, accepting "true"/"false" strings in any case.

    Raises:
        ValueError: If the value is neither a boolean nor one of those strings.
    """
    value = data.get(field, False)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"'{field}' must be a boolean, got {value!r}")


@dataclass
class SegmentProviderMatch:
    """A configured rule: a match expression and the segment it produces.

    Serialized with the PascalCase field names used by the rule files
    (`Key`, `Value`, `MatchExpression`, `Persist`, `AllowedAsVariant`).
    """
    key: str
    value: str = ""
    match_expression: str = ""
    persist: bool = False
    allowed_as_variant: bool = False

    @classmethod
    def from_dict(cls, data):
        """Builds a rule from one decoded JSON object.

        Missing strings become None and missing flags become False, so that a
        sparse entry still loads and is left to the caller's key filtering.
        A flag that is not a boolean or a "true"/"false" string raises
        ValueError.
        """
        return cls(
            key=_as_text(data.get('Key')),
            value=_as_text(data.get('Value')),
            match_expression=_as_text(data.get('MatchExpression')),
            persist=_as_flag(data, 'Persist'),
            allowed_as_variant=_as_flag(data, 'AllowedAsVariant'),
        )

    def to_dict(self):
        return {
            'Key': self.key,
            'Value': self.value,
            'MatchExpression': self.match_expression,
            'Persist': self.persist,
            'AllowedAsVariant': self.allowed_as_variant,
        }

    @property
    def has_key(self) -> bool:
        return bool(self.key and self.key.strip())


@dataclass(frozen=True)
class Segment:
    """A key/value pair attached to the current request."""
    key: str
    value: str
    persist: bool = False

    def to_dict(self):
        return {'key': self.key, 'value': self.value, 'persist': self.persist}


@dataclass(frozen=True)
class ContentVariantAttribute:
    """A selectable content variant exposed by a provider."""
    key: str
    name: str
    value: str

    def to_dict(self):
        return {'key': self.key, 'name': self.name, 'value': self.value}


class SegmentCollection:
    """Ordered segments produced for one request.

    Order follows the rules that produced them and duplicate keys are kept;
    deciding between duplicates is left to the consumer.
    """

    def __init__(self, segments=()):
        self._segments = list(segments)

    @classmethod
    def merge(cls, collections):
        """Concatenates several collections in the given order."""
        merged = cls()
        for collection in collections:
            merged._segments.extend(collection)
        return merged

    def persisted(self):
        return SegmentCollection(s for s in self._segments if s.persist)

    def to_list(self):
        return [segment.to_dict() for segment in self._segments]

    def __iter__(self):
        return iter(self._segments)

    def __len__(self):
        return len(self._segments)

    def __getitem__(self, index):
        return self._segments[index]

    def __eq__(self, other):
        if isinstance(other, SegmentCollection):
            return self._segments == other._segments
        if isinstance(other, list):
            return self._segments == other
        return NotImplemented

    def __repr__(self):
        return f"SegmentCollection({self._segments!r})"
