"""DynamoDB-backed event store."""
import logging
from decimal import Decimal
from typing import Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from processor.event_processor import parse_instant
from processor.models import (
    Event,
    EventSource,
    EventStatus,
    ExistingEventRef,
    Organizer,
    PlaceDescriptor,
)
from storage.base import EventStore

logger = logging.getLogger(__name__)

OPTIONAL_FIELDS = (
    'description', 'end_at', 'timezone', 'venue_name', 'address', 'lat',
    'lng', 'city', 'country', 'image_url', 'website',
)
PLACE_PROJECTION = ('uid', 'fingerprint', 'city', 'country', 'timezone')


def _to_decimal(value: Optional[float]) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


def _to_float(value) -> Optional[float]:
    return float(value) if value is not None else None


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


class DynamoDBEventStore(EventStore):
    """Event store on a DynamoDB table with hash key 'uid'."""

    BATCH_SIZE = 25  # DynamoDB batch write limit
    GET_BATCH_SIZE = 100  # DynamoDB batch get limit

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
            region_name: AWS region, defaults to the environment's
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBEventStore for table: {table_name}")

    def upsert_event(self, event: Event) -> None:
        """
        Write a single event, keeping an existing first_seen.

        The merge happens server side with if_not_exists, so no read is
        needed.

        Args:
            event: Event to write
        """
        item = self._event_to_item(event)
        item.pop('uid')

        names = {}
        values = {}
        set_clauses = []
        for index, (key, value) in enumerate(item.items()):
            names[f'#f{index}'] = key
            values[f':v{index}'] = value
            if key == 'first_seen':
                set_clauses.append(f'#f{index} = if_not_exists(#f{index}, :v{index})')
            else:
                set_clauses.append(f'#f{index} = :v{index}')

        remove_clauses = []
        for index, key in enumerate(f for f in OPTIONAL_FIELDS if f not in item):
            names[f'#r{index}'] = key
            remove_clauses.append(f'#r{index}')

        expression = 'SET ' + ', '.join(set_clauses)
        if remove_clauses:
            expression += ' REMOVE ' + ', '.join(remove_clauses)

        try:
            self.table.update_item(
                Key={'uid': event.uid},
                UpdateExpression=expression,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except ClientError as e:
            logger.error(f"Error upserting event {event.uid}: {e}")
            raise

    def upsert_events(self, events: List[Event]) -> int:
        """
        Write events in batches of 25 items.

        Each batch first reads the first_seen of already stored uids and
        carries it over, so re-ingesting an event never resets it.

        Args:
            events: Events to write

        Returns:
            Count of written events
        """
        if not events:
            return 0

        logger.info(f"Writing {len(events)} events to DynamoDB")
        success_count = 0

        for i in range(0, len(events), self.BATCH_SIZE):
            batch = events[i:i + self.BATCH_SIZE]

            try:
                first_seen = self._get_first_seen([event.uid for event in batch])
                with self.table.batch_writer(overwrite_by_pkeys=['uid']) as writer:
                    for event in batch:
                        item = self._event_to_item(event)
                        if event.uid in first_seen:
                            item['first_seen'] = first_seen[event.uid]
                        writer.put_item(Item=item)
                success_count += len(batch)

            except ClientError as e:
                logger.error(
                    f"Error writing batch {i // self.BATCH_SIZE + 1}: {e}"
                )
                raise

        logger.info(f"Successfully wrote {success_count} events")
        return success_count

    def get_event_by_uid(self, uid: str) -> Optional[Event]:
        """
        Retrieve a single event.

        Args:
            uid: Event uid

        Returns:
            Event or None if not stored
        """
        try:
            response = self.table.get_item(Key={'uid': uid})
        except ClientError as e:
            logger.error(f"Error reading event {uid}: {e}")
            raise

        item = response.get('Item')
        return self._item_to_event(item) if item else None

    def get_events_by_uids(self, uids: List[str]) -> List[ExistingEventRef]:
        """
        Retrieve fingerprint and place of stored events.

        Args:
            uids: Event uids; duplicates are ignored

        Returns:
            ExistingEventRef for every uid found in the table
        """
        items = self._batch_get(uids, PLACE_PROJECTION)
        return [
            ExistingEventRef(
                uid=item['uid'],
                fingerprint=item.get('fingerprint'),
                place=PlaceDescriptor(
                    city=item.get('city'),
                    country=item.get('country'),
                    timezone=item.get('timezone'),
                ),
            )
            for item in items
        ]

    def _get_first_seen(self, uids: List[str]) -> Dict[str, str]:
        items = self._batch_get(uids, ('uid', 'first_seen'))
        return {
            item['uid']: item['first_seen']
            for item in items
            if item.get('first_seen')
        }

    def _batch_get(self, uids: List[str], attributes) -> List[dict]:
        unique_uids = list(dict.fromkeys(uids))
        names = {f'#a{index}': name for index, name in enumerate(attributes)}
        projection = ', '.join(names.keys())

        items = []
        for i in range(0, len(unique_uids), self.GET_BATCH_SIZE):
            chunk = unique_uids[i:i + self.GET_BATCH_SIZE]
            request = {
                self.table_name: {
                    'Keys': [{'uid': uid} for uid in chunk],
                    'ProjectionExpression': projection,
                    'ExpressionAttributeNames': names,
                }
            }

            try:
                while request:
                    response = self.dynamodb.batch_get_item(RequestItems=request)
                    items.extend(response.get('Responses', {}).get(self.table_name, []))
                    request = response.get('UnprocessedKeys') or None
            except ClientError as e:
                logger.error(f"Error batch reading events: {e}")
                raise

        return items

    def _event_to_item(self, event: Event) -> dict:
        """
        Convert an Event to a DynamoDB item.

        Args:
            event: Event object

        Returns:
            DynamoDB item dictionary without None attributes
        """
        item = {
            'uid': event.uid,
            'fingerprint': event.fingerprint,
            'source': event.source.value,
            'source_url': event.source_url,
            'source_event_id': event.source_event_id,
            'title': event.title,
            'start_at': _iso(event.start_at),
            'organizers': [
                {k: v for k, v in vars(o).items() if v is not None}
                for o in event.organizers
            ],
            'tags': list(event.tags),
            'status': event.status.value,
            'sequence': event.sequence,
            'confidence': _to_decimal(event.confidence),
            'first_seen': _iso(event.first_seen),
            'last_seen': _iso(event.last_seen),
            'last_checked': _iso(event.last_checked),
        }

        optional = {
            'description': event.description,
            'end_at': _iso(event.end_at),
            'timezone': event.timezone,
            'venue_name': event.venue_name,
            'address': event.address,
            'lat': _to_decimal(event.lat),
            'lng': _to_decimal(event.lng),
            'city': event.city,
            'country': event.country,
            'image_url': event.image_url,
            'website': event.website,
        }
        item.update({k: v for k, v in optional.items() if v is not None})

        return item

    def _item_to_event(self, item: dict) -> Event:
        return Event(
            uid=item['uid'],
            fingerprint=item.get('fingerprint'),
            source=EventSource(item['source']),
            source_url=item['source_url'],
            source_event_id=item.get('source_event_id', item['uid']),
            title=item['title'],
            description=item.get('description'),
            start_at=parse_instant(item['start_at']),
            end_at=parse_instant(item.get('end_at')),
            timezone=item.get('timezone'),
            venue_name=item.get('venue_name'),
            address=item.get('address'),
            lat=_to_float(item.get('lat')),
            lng=_to_float(item.get('lng')),
            city=item.get('city'),
            country=item.get('country'),
            organizers=[Organizer(**o) for o in item.get('organizers', [])],
            tags=list(item.get('tags', [])),
            image_url=item.get('image_url'),
            website=item.get('website'),
            status=EventStatus(item.get('status', EventStatus.SCHEDULED.value)),
            sequence=int(item.get('sequence', 0)),
            confidence=float(item.get('confidence', 0)),
            first_seen=parse_instant(item['first_seen']),
            last_seen=parse_instant(item['last_seen']),
            last_checked=parse_instant(item['last_checked']),
        )
