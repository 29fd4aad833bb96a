from django.apps import AppConfig


class HubspotConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'hubspot'
    verbose_name = 'HubSpot CRM mirror'
