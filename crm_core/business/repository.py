from __future__ import annotations

from crm_core.business.models import Customer, Event, Project, Service
from crm_core.platform.security.repository import TenantScopedRepository


class CustomerRepository(TenantScopedRepository[Customer]):
    model = Customer
    resource = "Customer"


class ServiceRepository(TenantScopedRepository[Service]):
    model = Service
    resource = "Service"


class ProjectRepository(TenantScopedRepository[Project]):
    model = Project
    resource = "Project"


class EventRepository(TenantScopedRepository[Event]):
    model = Event
    resource = "Event"
