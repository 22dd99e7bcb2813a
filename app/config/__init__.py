# =============================================================================
# Marketplace Project Configuration
# =============================================================================
# Settings, URL routing, ASGI/WSGI entry points and the Celery app that runs
# reconciliation, provider calls and the scheduled order transitions.
#
# The Celery app is imported here so shared_task decorators bind to it as
# soon as Django loads.
# =============================================================================

from config.celery import app as celery_app

__all__ = ("celery_app",)
