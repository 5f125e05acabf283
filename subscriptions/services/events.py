from __future__ import annotations

import logging
from typing import Any, Optional

from django.db import models

from subscriptions.models import EventLog

logger = logging.getLogger(__name__)


class EventRecorder:
    """Facade around the EventLog model."""

    def record(
        self,
        event_type: str,
        *,
        resource_type: str,
        resource_id: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> EventLog:
        entry = EventLog.objects.create(
            event_type=event_type,
            resource_type=resource_type,
            resource_id=str(resource_id),
            payload=payload or {},
        )
        logger.debug("Recorded %s for %s %s", event_type, resource_type, resource_id)
        return entry

    def record_for(self, event_type: str, instance: models.Model, payload: Optional[dict[str, Any]] = None) -> EventLog:
        return self.record(
            event_type,
            resource_type=instance._meta.model_name,
            resource_id=instance.pk,
            payload=payload,
        )
