from datetime import timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from escrow.services import EscrowService
from projects.models import Project
from tools.models import Tool

User = get_user_model()


@pytest.fixture(autouse=True)
def offline_integrations(settings):
    settings.HUBSPOT_ACCESS_TOKEN = ''
    settings.DEFAULT_PAYMENT_PROVIDER = 'manual'
    settings.EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def make_member(db):
    counter = {'n': 0}

    def _make(**kwargs):
        counter['n'] += 1
        kwargs.setdefault('email', f"member{counter['n']}@example.com")
        kwargs.setdefault('first_name', 'Test')
        kwargs.setdefault('last_name', f"Member{counter['n']}")
        return User.objects.create_user(password='Passw0rd!234', **kwargs)

    return _make


@pytest.fixture
def owner(make_member):
    return make_member(email='owner@example.com', first_name='Olivia', last_name='Owner')


@pytest.fixture
def contractor(make_member):
    return make_member(email='contractor@example.com', first_name='Carlos', last_name='Builder', member_type='contractor')


@pytest.fixture
def admin_member(make_member):
    return make_member(email='admin@example.com', first_name='Ada', last_name='Admin', member_type='admin')


@pytest.fixture
def outsider(make_member):
    return make_member(email='outsider@example.com')


@pytest.fixture
def project(owner, contractor):
    return Project.objects.create(
        owner=owner,
        contractor=contractor,
        title='Community Center Renovation',
        description='Seismic retrofit and interior renovation',
        budget=Decimal('100000.00'),
        location='Oakland, CA',
        status='active',
        expected_completion_date=timezone.now().date() + timedelta(days=90),
    )


@pytest.fixture
def escrow(project):
    return EscrowService().create_project_escrow(
        project=project,
        total_project_value=Decimal('100000.00'),
        provider_name='manual',
    )


@pytest.fixture
def funded_escrow(escrow):
    return EscrowService().fund_escrow(escrow, amount=Decimal('50000.00'), payment_method='ach')


@pytest.fixture
def tool(db):
    return Tool.objects.create(
        name='Hilti TE 70 Rotary Hammer',
        category='power_tools',
        manufacturer='Hilti',
        model_number='TE 70-ATC',
        daily_rate=Decimal('45.00'),
        condition='good',
        location='Oakland Warehouse',
    )


@pytest.fixture
def auth_client(api_client):
    def _auth(member):
        api_client.force_authenticate(user=member)
        return api_client

    return _auth
