import logging
from urllib.parse import urlsplit, urlunsplit

from flask import current_app, g, request

from .models import SegmentCollection

logger = logging.getLogger(__name__)


def clean_request_url(url):
    """Normalizes a request URL before providers inspect it.

    The scheme and host are lower-cased, the query string and fragment are
    dropped and a trailing slash is removed from the path. The root path
    stays "/".

    Args:
        url (str | SplitResult): The URL as received.

    Returns:
        SplitResult: The cleaned URL.
    """
    parts = urlsplit(url) if isinstance(url, str) else url
    path = parts.path.rstrip("/") or "/"
    return urlsplit(urlunsplit(
        (parts.scheme.lower(), parts.netloc.lower(), path, "", "")))


class SegmentProviderRegistry:
    """Holds the segment providers of an application.

    Works like any other Flask extension: create it at import time, register
    providers, then call `init_app(app)`. Providers run in registration
    order and their segments are merged into one collection per request.
    """

    def __init__(self, app=None):
        self._providers = {}
        self.data_root = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.data_root = app.config.get("SEGMENTS_DATA_ROOT")
        for provider in self._providers.values():
            self._configure(provider)
        app.extensions["segment_registry"] = self
        app.before_request(self._assign_request_segments)

    def _configure(self, provider):
        # Providers built with an explicit data root keep it
        if hasattr(provider, "data_root") and provider.data_root is None:
            provider.data_root = self.data_root

    def register(self, provider):
        if provider.name in self._providers:
            raise ValueError(f"Segment provider '{provider.name}' is already registered")
        self._providers[provider.name] = provider
        if self.data_root is not None:
            self._configure(provider)
        logger.info("Registered segment provider %s", provider.name)
        return provider

    def unregister(self, name):
        return self._providers.pop(name)

    def get(self, name):
        try:
            return self._providers[name]
        except KeyError:
            raise KeyError(f"Unknown segment provider '{name}'") from None

    def names(self):
        return list(self._providers)

    def __iter__(self):
        return iter(list(self._providers.values()))

    def __len__(self):
        return len(self._providers)

    def __contains__(self, name):
        return name in self._providers

    def segments_for_request(self, http_request) -> SegmentCollection:
        """Runs every provider against `http_request` and merges the results."""
        original_url = urlsplit(http_request.url)
        cleaned_url = clean_request_url(original_url)
        return SegmentCollection.merge(
            provider.get_segments_for_request(original_url, cleaned_url,
                                              http_request)
            for provider in self)

    def _assign_request_segments(self):
        if not current_app.config.get("SEGMENTS_ENABLED", True):
            return
        # API calls and static files are not content requests
        if request.path.startswith("/api/") or request.endpoint == "static":
            return
        g.segments = self.segments_for_request(request)
