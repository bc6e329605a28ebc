from contextlib import contextmanager
from threading import local

from django.db import models

# Thread-local storage for the current organization
_thread_locals = local()


def set_current_organization(organization):
    """
    Set the current organization for this thread.

    Args:
        organization: Organization instance or None to clear

    Every engine entry point runs inside an organization context; the
    session object sets it before calling into the services.
    """
    _thread_locals.organization = organization


def get_current_organization():
    """
    Get the current organization for this thread.

    Returns:
        Organization instance or None if no context is set
    """
    return getattr(_thread_locals, "organization", None)


@contextmanager
def organization_context(organization):
    """Temporarily switch the current organization, restoring the previous one."""
    previous = get_current_organization()
    set_current_organization(organization)
    try:
        yield organization
    finally:
        set_current_organization(previous)


class OrganizationManager(models.Manager):
    """
    Automatically filters querysets by the current organization.

    FAILS CLOSED: returns an empty queryset if no organization context is set,
    so one property's orders can never leak into another's.

    Usage:
        class Table(models.Model):
            organization = models.ForeignKey('outlets.Organization', on_delete=models.CASCADE)

            objects = OrganizationManager()   # scoped
            all_objects = models.Manager()    # unscoped, for scripts and admin
    """

    def get_queryset(self):
        organization = get_current_organization()

        if organization:
            return super().get_queryset().filter(organization=organization)

        # FAIL CLOSED
        return super().get_queryset().none()
