"""
Clinic application.

Holds the domain models, the billing/scheduling/alerting services, the
Celery tasks and the REST API for the hospital administration backend.
"""
