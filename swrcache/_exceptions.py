from __future__ import annotations

import typing as tp

__all__ = ("OfflineCacheError", "ManifestError", "InstallError", "UnsupportedRequestError")


class OfflineCacheError(Exception): ...


class ManifestError(OfflineCacheError): ...


class UnsupportedRequestError(OfflineCacheError): ...


class InstallError(OfflineCacheError):
    def __init__(self, version: str, failures: tp.List[tp.Tuple[str, str]]) -> None:
        self.version = version
        self.failures = failures
        urls = ", ".join(url for url, _ in failures)
        super().__init__(f"Could not install cache {version!r}, failed to fetch: {urls}")
