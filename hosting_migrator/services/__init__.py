"""
Destination platform services and notifiers.
"""

from hosting_migrator.services.base import DatabaseService, DnsService, EmailService, Notifier
from hosting_migrator.services.mysql import MySQLDatabaseService
from hosting_migrator.services.notifications import CompositeNotifier, LoggingNotifier, WebhookNotifier

__all__ = [
    "DatabaseService",
    "EmailService",
    "DnsService",
    "Notifier",
    "MySQLDatabaseService",
    "LoggingNotifier",
    "WebhookNotifier",
    "CompositeNotifier",
]
