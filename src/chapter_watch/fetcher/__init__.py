"""Page fetching through escalating tiers."""

from chapter_watch.fetcher.base import FetchFailure, FetchOutcome, FetchTier, HttpResponse
from chapter_watch.fetcher.challenge import Verdict, VerdictKind, classify, classify_response
from chapter_watch.fetcher.host_store import HostStrategy, HostStrategyStore
from chapter_watch.fetcher.http_fetcher import HttpFetcher
from chapter_watch.fetcher.orchestrator import FetchOrchestrator, FetchState

__all__ = [
    "FetchFailure",
    "FetchOrchestrator",
    "FetchOutcome",
    "FetchState",
    "FetchTier",
    "HostStrategy",
    "HostStrategyStore",
    "HttpFetcher",
    "HttpResponse",
    "Verdict",
    "VerdictKind",
    "classify",
    "classify_response",
]
