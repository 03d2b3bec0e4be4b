from fastapi import Request

from core.activity import ActivityMonitor
from services.event_publisher import EventPublisher


def get_publisher(request: Request) -> EventPublisher:
    return request.app.state.publisher


def get_activity_monitor(request: Request) -> ActivityMonitor:
    return request.app.state.activity
