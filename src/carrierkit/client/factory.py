"""Ready-made :class:`~carrierkit.client.Transport` with the standard interceptor stack."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

import httpx

from carrierkit.client.transport import Transport
from carrierkit.errors.catalog import Language
from carrierkit.interceptors import (
    ApiKeyInterceptor,
    CachingInterceptor,
    DiskCacheStorage,
    ErrorTranslationInterceptor,
    InterceptorPipeline,
    MetricsCollector,
    MetricsInterceptor,
    RequestIdInterceptor,
    ResponseValidationInterceptor,
    RetryMarkingInterceptor,
    UserAgentInterceptor,
)
from carrierkit.models import TransportConfig


def build_default_pipeline(
    *,
    api_key: Optional[str] = None,
    api_key_location: str = "body",
    cache: Optional[CachingInterceptor] = None,
    language: Union[Language, str] = Language.EN,
    metrics: Optional[MetricsCollector] = None,
) -> InterceptorPipeline:
    """Assemble the standard pipeline.

    Registration order matters: response validation runs before the cache
    stores anything, and metrics sit after the cache so hits are not
    counted as network requests.
    """
    pipeline = InterceptorPipeline()
    pipeline.use(RequestIdInterceptor()).use(UserAgentInterceptor())
    if api_key:
        pipeline.use(ApiKeyInterceptor(api_key, location=api_key_location))
    pipeline.use(ResponseValidationInterceptor())
    if cache is not None:
        pipeline.use(cache)
    if metrics is not None:
        pipeline.use(MetricsInterceptor(metrics))
    pipeline.use(RetryMarkingInterceptor()).use(ErrorTranslationInterceptor(language))
    return pipeline


def create_default_transport(
    config: Optional[TransportConfig] = None,
    *,
    api_key: Optional[str] = None,
    api_key_location: str = "body",
    cache_dir: Optional[Union[str, Path]] = None,
    use_cache: bool = True,
    cache_ttl: float = 3600.0,
    language: Union[Language, str] = Language.EN,
    metrics: Optional[MetricsCollector] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Transport:
    """Build a :class:`Transport` wired with the standard interceptors.

    Args:
        config: Transport settings; defaults to :class:`TransportConfig()`.
        api_key: Carrier API key injected into every call.
        api_key_location: ``"body"`` or ``"header"``.
        cache_dir: Directory for a persistent :class:`DiskCacheStorage`.
            Without it the cache lives in memory.
        use_cache: Set to ``False`` to skip the caching interceptor.
        cache_ttl: Cache entry lifetime in seconds.
        language: Language of translated error messages.
        metrics: Optional collector fed by a :class:`MetricsInterceptor`.
        http_transport: Custom :mod:`httpx` transport (tests).

    Returns:
        An unopened :class:`Transport`; use it as an async context manager.
        A disk cache is closed together with the transport.
    """
    cache: Optional[CachingInterceptor] = None
    storage: Optional[DiskCacheStorage] = None
    if use_cache:
        storage = DiskCacheStorage(cache_dir) if cache_dir is not None else None
        cache = CachingInterceptor(storage=storage, ttl=cache_ttl)

    pipeline = build_default_pipeline(
        api_key=api_key,
        api_key_location=api_key_location,
        cache=cache,
        language=language,
        metrics=metrics,
    )
    transport = Transport(config, pipeline=pipeline, http_transport=http_transport)
    if storage is not None:
        transport.on_close(storage.close)
    return transport
