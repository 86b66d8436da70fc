from __future__ import annotations

DOMAIN = "hidesync"

CONF_BASE_URL = "base_url"
CONF_API_PREFIX = "api_prefix"
CONF_RESOURCE_PATH = "resource_path"
CONF_TIMEOUT = "timeout"
CONF_STORE_PATH = "store_path"
CONF_SEARCH_RETRIES = "search_retries"
CONF_PAGE_SIZE = "page_size"
CONF_PROBE_INTERVAL = "probe_interval"
CONF_TEMP_ID_PREFIX = "temp_id_prefix"

DEFAULT_API_PREFIX = "/api/v1"
DEFAULT_RESOURCE_PATH = "/documentation"
DEFAULT_TIMEOUT = 30
DEFAULT_STORE_PATH = ":memory:"
DEFAULT_SEARCH_RETRIES = 2
DEFAULT_PAGE_SIZE = 20
DEFAULT_PROBE_INTERVAL = 30
DEFAULT_TEMP_ID_PREFIX = "temp-"

# Environment overrides consumed by DocSyncConfig.from_env
ENV_API_URL = "HIDESYNC_API_URL"
ENV_STORE_PATH = "HIDESYNC_STORE_PATH"
ENV_TIMEOUT = "HIDESYNC_API_TIMEOUT"
ENV_PROBE_INTERVAL = "HIDESYNC_PROBE_INTERVAL"

# Statuses worth another attempt when searching
RETRYABLE_STATUSES = (429, 500, 502, 503, 504)

# Resource fields searched by the free-text filter
SEARCH_FIELDS = ("title", "description", "content")
RELATED_FIELD = "relatedResources"
CONTEXT_KEYS_FIELD = "contextualHelpKeys"
