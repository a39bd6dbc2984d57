"""API route handlers."""

from .rulesets import router as rulesets_router
from .audits import router as audits_router
