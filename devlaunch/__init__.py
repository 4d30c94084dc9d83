"""
devlaunch: starts a backend server and a frontend web process for local
development, gating the frontend on the backend's health endpoint.
"""

__version__ = "0.1.0"
