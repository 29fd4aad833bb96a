from decimal import Decimal

import pytest
from django.core import mail
from django.urls import reverse

from projects.models import Project


@pytest.fixture
def pending_project(owner):
    return Project.objects.create(owner=owner, title='Library Addition', description='Two-storey wing', budget=Decimal('250000'))


@pytest.mark.django_db
def test_create_project_makes_caller_the_owner(auth_client, owner):
    response = auth_client(owner).post(
        reverse('project-list-create'),
        {'title': 'Senior Housing', 'description': 'Ground-up build', 'budget': '1200000.00', 'location': 'Richmond, CA'},
        format='json',
    )

    assert response.status_code == 201
    project = response.data['project']
    assert project['owner']['email'] == owner.email
    assert project['status'] == 'pending'
    assert project['has_escrow'] is False


@pytest.mark.django_db
def test_create_project_validates_budget_and_dates(auth_client, owner):
    url = reverse('project-list-create')
    assert auth_client(owner).post(url, {'title': 'x', 'description': 'y', 'budget': '0'}, format='json').status_code == 400

    response = auth_client(owner).post(
        url,
        {'title': 'x', 'description': 'y', 'budget': '10', 'start_date': '2026-05-01', 'expected_completion_date': '2026-04-01'},
        format='json',
    )
    assert response.status_code == 400


@pytest.mark.django_db
def test_project_list_is_scoped(auth_client, project, owner, contractor, outsider, admin_member):
    assert len(auth_client(owner).get(reverse('project-list-create')).data) == 1
    assert len(auth_client(contractor).get(reverse('project-list-create')).data) == 1
    assert auth_client(outsider).get(reverse('project-list-create')).data == []
    assert len(auth_client(admin_member).get(reverse('project-list-create')).data) == 1


@pytest.mark.django_db
def test_only_owner_edits_project(auth_client, project, contractor, owner, outsider):
    url = reverse('project-detail', kwargs={'id': project.id})

    assert auth_client(outsider).get(url).status_code == 403
    assert auth_client(contractor).get(url).status_code == 200
    assert auth_client(contractor).patch(url, {'title': 'Renamed'}, format='json').status_code == 403

    response = auth_client(owner).patch(url, {'title': 'Renamed'}, format='json')
    assert response.status_code == 200
    assert response.data['title'] == 'Renamed'


@pytest.mark.django_db
def test_assign_contractor_emails_contractor(auth_client, pending_project, owner, contractor, outsider):
    url = reverse('project-assign-contractor', kwargs={'id': pending_project.id})

    assert auth_client(outsider).post(url, {'contractor_id': contractor.id}, format='json').status_code == 403
    assert auth_client(owner).post(url, {'contractor_id': outsider.id}, format='json').status_code == 400

    response = auth_client(owner).post(url, {'contractor_id': contractor.id}, format='json')
    assert response.status_code == 200
    assert response.data['contractor']['email'] == contractor.email
    assert mail.outbox[-1].to == [contractor.email]


@pytest.mark.django_db
def test_status_transitions(auth_client, pending_project, owner, contractor):
    url = reverse('project-status', kwargs={'id': pending_project.id})

    response = auth_client(owner).post(url, {'status': 'active'}, format='json')
    assert response.status_code == 400

    pending_project.contractor = contractor
    pending_project.save()

    assert auth_client(owner).post(url, {'status': 'active'}, format='json').status_code == 200
    response = auth_client(owner).post(url, {'status': 'completed'}, format='json')
    assert response.status_code == 200
    assert response.data['completed_at'] is not None

    assert auth_client(owner).post(url, {'status': 'active'}, format='json').status_code == 400
