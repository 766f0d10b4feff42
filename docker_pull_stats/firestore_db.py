#!/usr/bin/env python3
"""
Firestore time-series store for Google App Engine deployment.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from google.cloud import firestore

from .models import Entity, Sample, format_timestamp, parse_timestamp

COLLECTION = 'pull_history'


class FirestoreDatabaseManager:
    """Append-only pull count store backed by Firestore."""

    def __init__(self, client: Optional[firestore.Client] = None):
        """Initialize the Firestore database manager."""
        self.db = client or firestore.Client()
        self.logger = logging.getLogger(__name__)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        pass

    def setup_database(self):
        """Initialize collections - Firestore creates them automatically."""
        self.logger.info("Firestore collections will be created automatically")

    def append(self, entity_key: str, timestamp: datetime, value: int) -> None:
        """Append one point under an auto-generated document id."""
        entity = Entity.parse(entity_key)
        self.db.collection(COLLECTION).add({
            'entity': entity.key,
            'org': entity.org,
            'repo': entity.repo,
            'timestamp': format_timestamp(timestamp),
            'pull_count': int(value)
        })

    @staticmethod
    def _doc_to_sample(data: Dict) -> Sample:
        return Sample(Entity(data['org'], data['repo']), parse_timestamp(data['timestamp']), int(data['pull_count']))

    def query_oldest_since(self, entity_key: str, since: datetime) -> Optional[Sample]:
        """Return the earliest point for the repository strictly after ``since``."""
        docs = (self.db.collection(COLLECTION)
                .where('entity', '==', entity_key)
                .where('timestamp', '>', format_timestamp(since))
                .order_by('timestamp')
                .limit(1)
                .stream())

        for doc in docs:
            return self._doc_to_sample(doc.to_dict())
        return None

    def latest_sample(self, entity_key: str) -> Optional[Sample]:
        """Return the most recent point recorded for the repository."""
        docs = (self.db.collection(COLLECTION)
                .where('entity', '==', entity_key)
                .order_by('timestamp', direction=firestore.Query.DESCENDING)
                .limit(1)
                .stream())

        for doc in docs:
            return self._doc_to_sample(doc.to_dict())
        return None

    def get_history(self, entity_key: str, since: datetime) -> List[Sample]:
        """Return every point recorded for the repository after ``since``, oldest first."""
        docs = (self.db.collection(COLLECTION)
                .where('entity', '==', entity_key)
                .where('timestamp', '>', format_timestamp(since))
                .order_by('timestamp')
                .stream())

        return [self._doc_to_sample(doc.to_dict()) for doc in docs]
