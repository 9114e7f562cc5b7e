"""Remote CMS providers."""

from .memory_provider import InMemoryCmsProvider
from .rest_client import CmsApiClient, get_retry_after
from .rest_provider import RestCmsProvider


__all__ = ["CmsApiClient", "InMemoryCmsProvider", "RestCmsProvider", "get_retry_after"]
