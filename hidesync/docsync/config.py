from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import voluptuous as vol

from ..const import (
    CONF_API_PREFIX,
    CONF_BASE_URL,
    CONF_PAGE_SIZE,
    CONF_PROBE_INTERVAL,
    CONF_RESOURCE_PATH,
    CONF_SEARCH_RETRIES,
    CONF_STORE_PATH,
    CONF_TEMP_ID_PREFIX,
    CONF_TIMEOUT,
    DEFAULT_API_PREFIX,
    DEFAULT_PAGE_SIZE,
    DEFAULT_PROBE_INTERVAL,
    DEFAULT_RESOURCE_PATH,
    DEFAULT_SEARCH_RETRIES,
    DEFAULT_STORE_PATH,
    DEFAULT_TEMP_ID_PREFIX,
    DEFAULT_TIMEOUT,
    ENV_API_URL,
    ENV_PROBE_INTERVAL,
    ENV_STORE_PATH,
    ENV_TIMEOUT,
)


class InvalidConfig(ValueError):
    """Raised when sync options fail validation."""


def _base_url(value: Any) -> str:
    text = str(value or "").strip().rstrip("/")
    if not text.startswith(("http://", "https://")):
        raise vol.Invalid("base_url must start with http:// or https://")
    return text


def _stripped(value: Any) -> str:
    return str(value or "").strip()


OPTIONS_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_BASE_URL): _base_url,
        vol.Optional(CONF_API_PREFIX, default=DEFAULT_API_PREFIX): _stripped,
        vol.Optional(CONF_RESOURCE_PATH, default=DEFAULT_RESOURCE_PATH): vol.All(_stripped, vol.Length(min=1)),
        vol.Optional(CONF_TIMEOUT, default=DEFAULT_TIMEOUT): vol.All(vol.Coerce(float), vol.Range(min=1)),
        vol.Optional(CONF_STORE_PATH, default=DEFAULT_STORE_PATH): vol.All(_stripped, vol.Length(min=1)),
        vol.Optional(CONF_SEARCH_RETRIES, default=DEFAULT_SEARCH_RETRIES): vol.All(
            vol.Coerce(int), vol.Range(min=0, max=10)
        ),
        vol.Optional(CONF_PAGE_SIZE, default=DEFAULT_PAGE_SIZE): vol.All(vol.Coerce(int), vol.Range(min=1, max=500)),
        vol.Optional(CONF_PROBE_INTERVAL, default=DEFAULT_PROBE_INTERVAL): vol.All(
            vol.Coerce(float), vol.Any(0, vol.Range(min=5))
        ),
        vol.Optional(CONF_TEMP_ID_PREFIX, default=DEFAULT_TEMP_ID_PREFIX): vol.All(_stripped, vol.Length(min=1)),
    },
    extra=vol.REMOVE_EXTRA,
)


@dataclass(slots=True)
class DocSyncConfig:
    """Settings for the documentation sync stack."""

    base_url: str
    api_prefix: str = DEFAULT_API_PREFIX
    resource_path: str = DEFAULT_RESOURCE_PATH
    timeout: float = DEFAULT_TIMEOUT
    store_path: str = DEFAULT_STORE_PATH
    search_retries: int = DEFAULT_SEARCH_RETRIES
    page_size: int = DEFAULT_PAGE_SIZE
    probe_interval: float = DEFAULT_PROBE_INTERVAL
    temp_id_prefix: str = DEFAULT_TEMP_ID_PREFIX

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> DocSyncConfig:
        try:
            data = OPTIONS_SCHEMA(dict(options))
        except vol.Invalid as err:
            raise InvalidConfig(str(err)) from err
        return cls(
            base_url=data[CONF_BASE_URL],
            api_prefix=data[CONF_API_PREFIX],
            resource_path=data[CONF_RESOURCE_PATH],
            timeout=data[CONF_TIMEOUT],
            store_path=data[CONF_STORE_PATH],
            search_retries=data[CONF_SEARCH_RETRIES],
            page_size=data[CONF_PAGE_SIZE],
            probe_interval=data[CONF_PROBE_INTERVAL],
            temp_id_prefix=data[CONF_TEMP_ID_PREFIX],
        )

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> DocSyncConfig:
        """Build a config from ``HIDESYNC_*`` environment variables.

        ``HIDESYNC_API_URL`` defaults to ``http://localhost:8000``; explicit
        keyword overrides win over the environment.
        """

        env = os.environ if environ is None else environ
        options: dict[str, Any] = {CONF_BASE_URL: env.get(ENV_API_URL, "http://localhost:8000")}
        if env.get(ENV_STORE_PATH):
            options[CONF_STORE_PATH] = env[ENV_STORE_PATH]
        if env.get(ENV_TIMEOUT):
            options[CONF_TIMEOUT] = env[ENV_TIMEOUT]
        if env.get(ENV_PROBE_INTERVAL):
            options[CONF_PROBE_INTERVAL] = env[ENV_PROBE_INTERVAL]
        options.update(overrides)
        return cls.from_options(options)

    @property
    def probe_enabled(self) -> bool:
        return self.probe_interval > 0

    def as_options(self) -> dict[str, Any]:
        return {
            CONF_BASE_URL: self.base_url,
            CONF_API_PREFIX: self.api_prefix,
            CONF_RESOURCE_PATH: self.resource_path,
            CONF_TIMEOUT: self.timeout,
            CONF_STORE_PATH: self.store_path,
            CONF_SEARCH_RETRIES: self.search_retries,
            CONF_PAGE_SIZE: self.page_size,
            CONF_PROBE_INTERVAL: self.probe_interval,
            CONF_TEMP_ID_PREFIX: self.temp_id_prefix,
        }


__all__ = ["DocSyncConfig", "InvalidConfig", "OPTIONS_SCHEMA"]
