"""
ERP services — a microservice decomposition of an ERP backend.

Users, Products and Orders each own a private store. Inter-service calls
go through the resiliency layer, a router fronts the services, and an
autoscaler controller keeps replica counts within configured bounds.
"""

__version__ = "0.1.0"
