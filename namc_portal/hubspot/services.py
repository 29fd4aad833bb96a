import logging

import requests
from django.conf import settings

from .exceptions import HubSpotError

logger = logging.getLogger(__name__)


class HubSpotBackboneService:
    """
    Thin client over the HubSpot CRM v3 REST API.

    Every call raises HubSpotError on transport or HTTP failure; callers that
    treat HubSpot as a best-effort mirror go through hubspot.sync instead.
    """

    def __init__(self, access_token=None, base_url=None, timeout=None):
        self.access_token = access_token if access_token is not None else settings.HUBSPOT_ACCESS_TOKEN
        self.base_url = (base_url or settings.HUBSPOT_BASE_URL).rstrip('/')
        self.timeout = timeout or settings.HUBSPOT_TIMEOUT

    @property
    def is_enabled(self):
        return bool(self.access_token)

    def _headers(self):
        return {
            'Authorization': f'Bearer {self.access_token}',
            'Content-Type': 'application/json',
        }

    def _request(self, method, path, payload=None, params=None):
        url = f"{self.base_url}{path}"
        try:
            response = requests.request(
                method,
                url,
                json=payload,
                params=params,
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            status_code = getattr(getattr(e, 'response', None), 'status_code', None)
            logger.error(f"HubSpot {method} {path} failed: {str(e)}")
            raise HubSpotError(str(e), status_code=status_code) from e

        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"HubSpot {method} {path} returned a non-JSON body: {str(e)}")
            raise HubSpotError(f"Invalid JSON in HubSpot response: {str(e)}", status_code=response.status_code) from e

    # Custom and standard CRM objects

    def create_object(self, object_type, properties, associations=None):
        payload = {'properties': properties}
        if associations:
            payload['associations'] = associations
        return self._request('POST', f'/crm/v3/objects/{object_type}', payload)

    def update_object(self, object_type, object_id, properties):
        return self._request('PATCH', f'/crm/v3/objects/{object_type}/{object_id}', {'properties': properties})

    def archive_object(self, object_type, object_id):
        self._request('DELETE', f'/crm/v3/objects/{object_type}/{object_id}')

    def get_object(self, object_type, object_id, properties=None):
        params = {'properties': ','.join(properties)} if properties else None
        return self._request('GET', f'/crm/v3/objects/{object_type}/{object_id}', params=params)

    def search_objects(self, object_type, filters, properties=None):
        payload = {'filterGroups': [{'filters': filters}]}
        if properties:
            payload['properties'] = properties
        return self._request('POST', f'/crm/v3/objects/{object_type}/search', payload)

    # Contacts and tickets

    def find_contact_by_email(self, email):
        result = self.search_objects(
            'contacts',
            [{'propertyName': 'email', 'operator': 'EQ', 'value': email}],
            properties=['email'],
        )
        matches = result.get('results') or []
        return matches[0] if matches else None

    def upsert_contact(self, email, properties):
        """Update the contact with this email, creating it when HubSpot has none."""
        existing = self.find_contact_by_email(email)
        if existing:
            return self.update_object('contacts', existing['id'], properties)
        return self.create_object('contacts', {'email': email, **properties})

    def create_ticket(self, subject, content, pipeline, stage, priority='MEDIUM', category=None, contact_id=None):
        properties = {
            'hs_ticket_subject': subject,
            'subject': subject,
            'content': content,
            'hs_pipeline': pipeline,
            'hs_pipeline_stage': stage,
            'hs_ticket_priority': priority,
        }
        if category:
            properties['hs_ticket_category'] = category

        associations = None
        if contact_id:
            associations = [{
                'to': {'id': contact_id},
                'types': [{'associationCategory': 'HUBSPOT_DEFINED', 'associationTypeId': 16}],
            }]
        return self.create_object('tickets', properties, associations)

    def trigger_workflow(self, workflow_name, object_id, data=None):
        # Enrolment goes through HubSpot-side workflow triggers; the portal only records the event.
        logger.info(f"Triggering HubSpot workflow '{workflow_name}' for object {object_id}", extra={'workflow_data': data or {}})
