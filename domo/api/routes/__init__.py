"""API route handlers for Domo."""

from domo.api.routes import webhooks as webhooks
