import logging
import re
from abc import ABC, abstractmethod

from .locks import ReadWriteLock
from .models import ContentVariantAttribute, Segment, SegmentCollection
from .rule_store import SegmentRuleStore

logger = logging.getLogger(__name__)


def _require(**arguments):
    for name, value in arguments.items():
        if value is None:
            raise ValueError(f"{name} must not be None")


class ContentSegmentProvider(ABC):
    """Base class for anything that assigns segments to a request.

    Subclasses list the variants they can always produce in `static_variants`
    and compute the segments of a request in `get_segments_for_request`.
    """

    static_variants: tuple = ()

    def __init__(self, name=None):
        self.name = name or type(self).__name__

    @property
    def assignable_content_variants(self) -> list[ContentVariantAttribute]:
        return list(self.static_variants)

    @abstractmethod
    def get_segments_for_request(self, original_url, cleaned_url,
                                 request) -> SegmentCollection:
        ...


class ConfigurableSegmentProvider(ContentSegmentProvider):
    """A provider whose segments come from administrator-defined rules.

    The provider extracts one value from the request (a referrer, a cookie,
    a header...) in `get_current_value`. Every configured rule whose match
    expression matches that value adds its key/value as a segment.

    Rules are stored per provider in a JSON file named after `config_key`,
    which defaults to the provider's module and class name.
    """

    def __init__(self, config_key=None, data_root=None, name=None):
        super().__init__(name=name)
        self.config_key = config_key or self.default_config_key()
        self.data_root = data_root
        # One lock per provider instance, shared by every store it builds
        self._lock = ReadWriteLock()

    @classmethod
    def default_config_key(cls, qualifier=None):
        key = f"{cls.__module__}.{cls.__name__}"
        return f"{key}.{qualifier}" if qualifier else key

    @property
    def store(self) -> SegmentRuleStore:
        if self.data_root is None:
            raise RuntimeError(
                f"Segment provider '{self.name}' has no data root configured")
        return SegmentRuleStore(self.config_key, self.data_root, lock=self._lock)

    @property
    def assignable_content_variants(self) -> list[ContentVariantAttribute]:
        """Static variants plus every rule flagged as a variant.

        Structurally equal variants are collapsed; the first occurrence keeps
        its position.
        """
        candidates = list(super().assignable_content_variants)
        candidates.extend(
            ContentVariantAttribute(rule.key, rule.key, rule.value)
            for rule in self.read_segment_configuration()
            if rule.allowed_as_variant)

        seen = set()
        variants = []
        for variant in candidates:
            if variant not in seen:
                seen.add(variant)
                variants.append(variant)
        return variants

    @abstractmethod
    def get_current_value(self, cleaned_url, request):
        """Returns the request value rules are matched against, or None."""

    def is_match(self, match_expression, cleaned_url, request) -> bool:
        """Tests `match_expression` as a regular expression against the
        provider's current value.

        Override to use other matching semantics. A missing current value
        never matches.
        """
        _require(match_expression=match_expression, cleaned_url=cleaned_url,
                 request=request)

        value = self.get_current_value(cleaned_url, request)
        if value is None:
            return False

        return re.search(match_expression, str(value)) is not None

    def get_segments_for_request(self, original_url, cleaned_url,
                                 request) -> SegmentCollection:
        _require(original_url=original_url, cleaned_url=cleaned_url,
                 request=request)

        rules = self.read_segment_configuration()
        segments = SegmentCollection(
            Segment(rule.key, rule.value, rule.persist) for rule in rules
            if self.is_match(rule.match_expression, cleaned_url, request))
        logger.debug("Provider %s matched %d of %d rules", self.name,
                     len(segments), len(rules))
        return segments

    def read_segment_configuration(self):
        return self.store.read()

    def write_segment_configuration(self, rules) -> None:
        self.store.write(rules)


# --- Request value providers ---


class ReferrerSegmentProvider(ConfigurableSegmentProvider):
    """Matches rules against the Referer header."""

    def get_current_value(self, cleaned_url, request):
        return request.referrer


class UserAgentSegmentProvider(ConfigurableSegmentProvider):
    """Matches rules against the User-Agent header."""

    def get_current_value(self, cleaned_url, request):
        return request.headers.get("User-Agent")


class QueryStringSegmentProvider(ConfigurableSegmentProvider):
    """Matches rules against a single query string parameter."""

    def __init__(self, parameter, config_key=None, data_root=None, name=None):
        super().__init__(
            config_key=config_key or self.default_config_key(parameter),
            data_root=data_root,
            name=name or f"query:{parameter}")
        self.parameter = parameter

    def get_current_value(self, cleaned_url, request):
        return request.args.get(self.parameter)


class CookieSegmentProvider(ConfigurableSegmentProvider):
    """Matches rules against a single request cookie."""

    def __init__(self, cookie_name, config_key=None, data_root=None, name=None):
        super().__init__(
            config_key=config_key or self.default_config_key(cookie_name),
            data_root=data_root,
            name=name or f"cookie:{cookie_name}")
        self.cookie_name = cookie_name

    def get_current_value(self, cleaned_url, request):
        return request.cookies.get(self.cookie_name)


class RequestPathSegmentProvider(ConfigurableSegmentProvider):
    """Matches rules against the cleaned request path."""

    def get_current_value(self, cleaned_url, request):
        return cleaned_url.path


class LanguageSegmentProvider(ConfigurableSegmentProvider):
    """Matches rules against the preferred Accept-Language entry."""

    static_variants = (
        ContentVariantAttribute("lang", "lang", "en"),
        ContentVariantAttribute("lang", "lang", "fr"),
    )

    def get_current_value(self, cleaned_url, request):
        # Werkzeug returns None when the header is absent
        return request.accept_languages.best
