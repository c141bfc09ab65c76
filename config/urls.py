"""
URL configuration for the IT Support Desk.

The ticket core is consumed through its service layer; HTTP views and
routing live with the presentation layer that embeds it.
"""

from django.urls import URLPattern, URLResolver

urlpatterns: list[URLPattern | URLResolver] = []
