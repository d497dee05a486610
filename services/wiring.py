from dataclasses import dataclass

from fastapi import Request

from recommender.engine import RecommendationEngine
from services.counters import CounterAggregator
from services.event_store import EventStore
from services.queries import QueryEngine
from services.refresh_queue import RefreshQueue
from services.tracking import TrackingService


@dataclass
class AnalyticsServices:
    store: object
    events: EventStore
    counters: CounterAggregator
    queries: QueryEngine
    recommender: RecommendationEngine
    tracking: TrackingService
    refresh_queue: RefreshQueue


def build_services(store, refresh_queue: RefreshQueue) -> AnalyticsServices:
    """Wires every analytics component around one store handle."""
    events = EventStore(store)
    counters = CounterAggregator(store, events)
    queries = QueryEngine(store, events)
    return AnalyticsServices(
        store=store,
        events=events,
        counters=counters,
        queries=queries,
        recommender=RecommendationEngine(store, queries),
        tracking=TrackingService(events, counters, refresh_queue),
        refresh_queue=refresh_queue,
    )


def get_services(request: Request) -> AnalyticsServices:
    return request.app.state.services
