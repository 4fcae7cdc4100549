"""Interceptor pipeline and the interceptors shipped with carrierkit.

Interceptors hook the request, response and error stages of every
:class:`~carrierkit.client.Transport` call. Register them on an
:class:`InterceptorPipeline` in the order they should run::

    pipeline = InterceptorPipeline()
    pipeline.use(RequestIdInterceptor()).use(CachingInterceptor())
"""

from carrierkit.interceptors.builtin import (
    ApiKeyInterceptor,
    ErrorTranslationInterceptor,
    LoggingInterceptor,
    MetricsCollector,
    MetricsInterceptor,
    RateLimitingInterceptor,
    RequestIdInterceptor,
    ResponseValidationInterceptor,
    RetryMarkingInterceptor,
    UserAgentInterceptor,
)
from carrierkit.interceptors.cache import (
    CachingInterceptor,
    DiskCacheStorage,
    MemoryCacheStorage,
    make_cache_key,
)
from carrierkit.interceptors.pipeline import (
    Continue,
    Interceptor,
    InterceptorPipeline,
    Resolved,
)

__all__ = [
    "ApiKeyInterceptor",
    "CachingInterceptor",
    "Continue",
    "DiskCacheStorage",
    "ErrorTranslationInterceptor",
    "Interceptor",
    "InterceptorPipeline",
    "LoggingInterceptor",
    "MemoryCacheStorage",
    "MetricsCollector",
    "MetricsInterceptor",
    "RateLimitingInterceptor",
    "RequestIdInterceptor",
    "Resolved",
    "ResponseValidationInterceptor",
    "RetryMarkingInterceptor",
    "UserAgentInterceptor",
    "make_cache_key",
]
